"""
Story Payment Service

Builds the unsigned STORIES transfer a reader signs to unlock a story, and
submits the signed transaction back to the network.

Flow:
1. create: price the story in STORIES, check the payer's balances and return
   an unsigned legacy transaction (priority fee + SPL token transfer)
2. confirm: check the signed transaction, send it and wait for a single
   confirmation at the "confirmed" commitment
"""

import asyncio
import base64
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import aiohttp
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.compute_budget import set_compute_unit_price
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import TransferParams, get_associated_token_address, transfer

from ..core.config import settings
from ..core.logging import create_payment_logger, get_logger, log_purchase_event
from ..core.security import validate_solana_address
from .price_service import PriceUnavailableError, get_stories_price
from .solana_client import (
    LAMPORTS_PER_SOL,
    RPCUnavailableError,
    account_exists,
    connect_rpc,
    get_sol_balance,
    get_token_balance,
)

logger = get_logger(__name__)
payment_logger = create_payment_logger()

NETWORK_ERRORS = (
    RPCUnavailableError,
    SolanaRpcException,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
)


class PaymentError(Exception):
    """Payment failure carrying the machine code and HTTP status returned to the client."""

    def __init__(self, code: str, status_code: int, message: str, **extra: Any):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.message = message
        self.extra = extra


@dataclass
class PaymentQuote:
    """Unsigned payment transaction handed to the wallet for signing."""

    tx_base64: str
    price_tokens: float
    price_usd: float
    message: str
    validUntil: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StoryPaymentService:
    """Two-step STORIES payment for story access."""

    def __init__(
        self,
        treasury_address: Optional[str] = None,
        token_mint: Optional[str] = None,
    ):
        self.treasury_address = treasury_address or settings.treasury_address
        self.token_mint = token_mint or settings.stories_token_mint
        self.decimals = settings.stories_decimals
        self.usd_price = settings.story_usd_price

    @property
    def mint(self) -> Pubkey:
        return Pubkey.from_string(self.token_mint)

    @property
    def treasury(self) -> Pubkey:
        return Pubkey.from_string(self.treasury_address)

    def token_amount(self, stories_price_usd: float) -> Dict[str, Any]:
        """Tokens needed to cover the USD story price, as a float and in base units."""
        price_tokens = self.usd_price / stories_price_usd
        return {
            "price_tokens": price_tokens,
            "base_units": math.floor(price_tokens * 10 ** self.decimals),
        }

    def build_transfer_transaction(
        self,
        payer: Pubkey,
        amount: int,
        blockhash,
    ) -> Transaction:
        """Unsigned legacy transaction: compute unit price, then the SPL transfer."""
        source = get_associated_token_address(payer, self.mint)
        destination = get_associated_token_address(self.treasury, self.mint)

        instructions = [
            set_compute_unit_price(settings.priority_fee_micro_lamports),
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=source,
                    dest=destination,
                    owner=payer,
                    amount=amount,
                )
            ),
        ]
        message = Message.new_with_blockhash(instructions, payer, blockhash)
        return Transaction.new_unsigned(message)

    async def create_payment(
        self, wallet_address: str, story_id: Optional[int] = None
    ) -> PaymentQuote:
        """
        Price the story and build the unsigned transfer for wallet_address.

        Raises:
            PaymentError: with INVALID_WALLET, NO_TOKEN_ACCOUNT,
                INSUFFICIENT_TOKENS, INSUFFICIENT_SOL, NETWORK_ERROR or
                TRANSACTION_FAILED
        """
        if not validate_solana_address(wallet_address):
            raise PaymentError("INVALID_WALLET", 400, "Invalid wallet address provided")

        payer = Pubkey.from_string(wallet_address)
        client: Optional[AsyncClient] = None

        try:
            client = await connect_rpc()

            stories_price = await get_stories_price()
            amounts = self.token_amount(stories_price)
            price_tokens = amounts["price_tokens"]
            base_units = amounts["base_units"]

            payer_token_account = get_associated_token_address(payer, self.mint)
            token_balance, sol_balance = await asyncio.gather(
                get_token_balance(client, payer_token_account),
                get_sol_balance(client, payer),
            )

            if token_balance is None:
                raise PaymentError(
                    "NO_TOKEN_ACCOUNT",
                    400,
                    "No STORIES token account found. You need to acquire STORIES tokens first.",
                    requiredTokens=price_tokens,
                    actionUrl=settings.stories_swap_url,
                )

            if token_balance < base_units:
                current_balance = token_balance / 10 ** self.decimals
                raise PaymentError(
                    "INSUFFICIENT_TOKENS",
                    400,
                    f"Insufficient STORIES balance. Need {price_tokens:.4f}, have {current_balance:.4f}",
                    requiredTokens=price_tokens,
                    currentBalance=current_balance,
                    actionUrl=settings.stories_swap_url,
                )

            min_lamports = settings.min_sol_balance * LAMPORTS_PER_SOL
            if sol_balance < min_lamports:
                raise PaymentError(
                    "INSUFFICIENT_SOL",
                    400,
                    f"Insufficient SOL for fees. Need at least {settings.min_sol_balance} SOL",
                    requiredSol=settings.min_sol_balance,
                    currentSol=sol_balance / LAMPORTS_PER_SOL,
                )

            blockhash_response = await client.get_latest_blockhash()
            tx = self.build_transfer_transaction(
                payer, base_units, blockhash_response.value.blockhash
            )

            valid_until = datetime.utcnow() + timedelta(seconds=settings.payment_valid_seconds)
            log_purchase_event(
                payment_logger,
                "payment_created",
                story_id=story_id,
                wallet_address=wallet_address,
                price_tokens=price_tokens,
                base_units=base_units,
            )
            return PaymentQuote(
                tx_base64=base64.b64encode(bytes(tx)).decode("ascii"),
                price_tokens=price_tokens,
                price_usd=self.usd_price,
                message=f"Payment required: {price_tokens:.4f} STORIES (${self.usd_price:g})",
                validUntil=valid_until.isoformat() + "Z",
            )

        except PaymentError:
            raise
        except PriceUnavailableError as e:
            logger.error("payment_price_unavailable", error=str(e))
            raise PaymentError("NETWORK_ERROR", 503, "Failed to fetch STORIES price") from e
        except NETWORK_ERRORS as e:
            logger.error("payment_network_error", error=str(e) or type(e).__name__)
            raise PaymentError(
                "NETWORK_ERROR", 503, "Failed to connect to blockchain network"
            ) from e
        except Exception as e:
            logger.error("payment_create_failed", error=str(e), exc_info=True)
            raise PaymentError(
                "TRANSACTION_FAILED", 500, "Failed to create transaction", details=str(e)
            ) from e
        finally:
            if client is not None:
                await client.close()

    def decode_signed_transaction(self, signed_tx_base64: str) -> Transaction:
        """Deserialize the wallet-signed transaction and check it moves SPL tokens."""
        try:
            raw = base64.b64decode(signed_tx_base64, validate=True)
            tx = Transaction.from_bytes(raw)
        except Exception as e:
            raise PaymentError("TRANSACTION_FAILED", 400, "Invalid signed transaction") from e

        account_keys = tx.message.account_keys
        has_token_transfer = any(
            account_keys[ix.program_id_index] == TOKEN_PROGRAM_ID
            for ix in tx.message.instructions
        )
        if not has_token_transfer:
            raise PaymentError(
                "TRANSACTION_FAILED", 400, "No token transfer instruction found"
            )
        return tx

    async def submit_payment(self, signed_tx_base64: str) -> str:
        """
        Send the signed transaction and wait for one confirmation.

        Returns:
            The transaction signature
        """
        tx = self.decode_signed_transaction(signed_tx_base64)
        client: Optional[AsyncClient] = None

        try:
            client = await connect_rpc()

            if not await account_exists(client, self.treasury):
                raise PaymentError(
                    "TREASURY_ACCOUNT_MISSING", 400, "Treasury wallet account not found"
                )

            treasury_token_account = get_associated_token_address(self.treasury, self.mint)
            if not await account_exists(client, treasury_token_account):
                raise PaymentError(
                    "TREASURY_TOKEN_ACCOUNT_MISSING", 400, "Treasury token account not found"
                )

            send_response = await client.send_raw_transaction(
                bytes(tx),
                opts=TxOpts(
                    skip_preflight=False,
                    preflight_commitment=Confirmed,
                    max_retries=3,
                ),
            )
            signature = send_response.value

            confirmation = await client.confirm_transaction(signature, commitment=Confirmed)
            statuses = confirmation.value or []
            if not statuses or statuses[0] is None or statuses[0].err:
                raise PaymentError("TRANSACTION_FAILED", 500, "Transaction failed to confirm")

            return str(signature)

        except PaymentError:
            raise
        except RPCUnavailableError as e:
            raise PaymentError(
                "NETWORK_ERROR", 503, "Failed to connect to blockchain network"
            ) from e
        except Exception as e:
            logger.error("payment_submit_failed", error=str(e), exc_info=True)
            raise PaymentError("TRANSACTION_FAILED", 500, str(e) or "Transaction failed") from e
        finally:
            if client is not None:
                await client.close()


payment_service = StoryPaymentService()
