"""
Tests for the STORIES payment service with the RPC client mocked out.
"""

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from solders.compute_budget import set_compute_unit_price
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID

from storiesfun.services.payment_service import PaymentError, StoryPaymentService
from storiesfun.services.price_service import PriceUnavailableError
from storiesfun.services.solana_client import RPCUnavailableError

MODULE = "storiesfun.services.payment_service"


@pytest.fixture
def service():
    return StoryPaymentService(
        treasury_address=str(Keypair().pubkey()),
        token_mint=str(Keypair().pubkey()),
    )


def mock_client(token_amount=10_000_000_000, lamports=1_000_000_000, token_account=True):
    client = AsyncMock()
    client.get_account_info.return_value = SimpleNamespace(value=object() if token_account else None)
    client.get_token_account_balance.return_value = SimpleNamespace(
        value=SimpleNamespace(amount=str(token_amount))
    )
    client.get_balance.return_value = SimpleNamespace(value=lamports)
    client.get_latest_blockhash.return_value = SimpleNamespace(
        value=SimpleNamespace(blockhash=Hash.default())
    )
    return client


def test_token_amount_floors_base_units(service):
    amounts = service.token_amount(3.0)

    assert amounts["price_tokens"] == pytest.approx(3.0)
    assert amounts["base_units"] == 3_000_000_000


async def test_create_payment_builds_transfer(service):
    """
    Test a successful create step.

    Arrange: Price of $1.50 and a wallet holding 10 STORIES and 1 SOL
    Act: create_payment
    Assert: Quote for 6 STORIES with a two-instruction unsigned transaction
    """
    client = mock_client()
    wallet = str(Keypair().pubkey())

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)), \
            patch(f"{MODULE}.get_stories_price", AsyncMock(return_value=1.5)):
        quote = await service.create_payment(wallet, story_id=3)

    assert quote.price_tokens == pytest.approx(6.0)
    assert quote.price_usd == 9.0
    assert quote.validUntil.endswith("Z")

    tx = Transaction.from_bytes(base64.b64decode(quote.tx_base64))
    assert len(tx.message.instructions) == 2
    assert str(tx.message.account_keys[0]) == wallet
    client.close.assert_awaited_once()


async def test_create_payment_invalid_wallet_skips_rpc(service):
    connect = AsyncMock()

    with patch(f"{MODULE}.connect_rpc", connect):
        with pytest.raises(PaymentError) as exc_info:
            await service.create_payment("not-a-wallet")

    assert exc_info.value.code == "INVALID_WALLET"
    assert exc_info.value.status_code == 400
    connect.assert_not_awaited()


async def test_create_payment_without_token_account(service):
    client = mock_client(token_account=False)

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)), \
            patch(f"{MODULE}.get_stories_price", AsyncMock(return_value=1.5)):
        with pytest.raises(PaymentError) as exc_info:
            await service.create_payment(str(Keypair().pubkey()))

    assert exc_info.value.code == "NO_TOKEN_ACCOUNT"
    assert "actionUrl" in exc_info.value.extra


async def test_create_payment_insufficient_tokens(service):
    client = mock_client(token_amount=5_000_000_000)

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)), \
            patch(f"{MODULE}.get_stories_price", AsyncMock(return_value=1.5)):
        with pytest.raises(PaymentError) as exc_info:
            await service.create_payment(str(Keypair().pubkey()))

    error = exc_info.value
    assert error.code == "INSUFFICIENT_TOKENS"
    assert error.extra["currentBalance"] == pytest.approx(5.0)
    assert error.extra["requiredTokens"] == pytest.approx(6.0)


async def test_create_payment_insufficient_sol(service):
    client = mock_client(lamports=1_000)

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)), \
            patch(f"{MODULE}.get_stories_price", AsyncMock(return_value=1.5)):
        with pytest.raises(PaymentError) as exc_info:
            await service.create_payment(str(Keypair().pubkey()))

    assert exc_info.value.code == "INSUFFICIENT_SOL"
    assert exc_info.value.extra["requiredSol"] == 0.01


async def test_create_payment_price_unavailable(service):
    client = mock_client()

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)), \
            patch(f"{MODULE}.get_stories_price", AsyncMock(side_effect=PriceUnavailableError("down"))):
        with pytest.raises(PaymentError) as exc_info:
            await service.create_payment(str(Keypair().pubkey()))

    assert exc_info.value.code == "NETWORK_ERROR"
    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "Failed to fetch STORIES price"
    client.close.assert_awaited_once()


async def test_create_payment_rpc_unavailable(service):
    with patch(f"{MODULE}.connect_rpc", AsyncMock(side_effect=RPCUnavailableError("all down"))):
        with pytest.raises(PaymentError) as exc_info:
            await service.create_payment(str(Keypair().pubkey()))

    assert exc_info.value.code == "NETWORK_ERROR"
    assert exc_info.value.status_code == 503


def unsigned_transfer(service):
    payer = Keypair().pubkey()
    tx = service.build_transfer_transaction(payer, 1_000, Hash.default())
    return base64.b64encode(bytes(tx)).decode("ascii")


def test_decode_rejects_garbage(service):
    with pytest.raises(PaymentError) as exc_info:
        service.decode_signed_transaction("%%% not base64 %%%")

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid signed transaction"


def test_decode_requires_token_instruction(service):
    payer = Keypair().pubkey()
    message = Message.new_with_blockhash([set_compute_unit_price(1)], payer, Hash.default())
    encoded = base64.b64encode(bytes(Transaction.new_unsigned(message))).decode("ascii")

    with pytest.raises(PaymentError) as exc_info:
        service.decode_signed_transaction(encoded)

    assert exc_info.value.message == "No token transfer instruction found"


def test_decode_accepts_transfer(service):
    tx = service.decode_signed_transaction(unsigned_transfer(service))

    assert TOKEN_PROGRAM_ID in tx.message.account_keys


async def test_submit_payment_returns_signature(service):
    client = mock_client()
    client.send_raw_transaction.return_value = SimpleNamespace(value=Signature.default())
    client.confirm_transaction.return_value = SimpleNamespace(value=[SimpleNamespace(err=None)])

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)):
        signature = await service.submit_payment(unsigned_transfer(service))

    assert signature == str(Signature.default())
    client.send_raw_transaction.assert_awaited_once()
    client.close.assert_awaited_once()


async def test_submit_payment_failed_confirmation(service):
    client = mock_client()
    client.send_raw_transaction.return_value = SimpleNamespace(value=Signature.default())
    client.confirm_transaction.return_value = SimpleNamespace(
        value=[SimpleNamespace(err="InstructionError")]
    )

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)):
        with pytest.raises(PaymentError) as exc_info:
            await service.submit_payment(unsigned_transfer(service))

    assert exc_info.value.code == "TRANSACTION_FAILED"
    assert exc_info.value.status_code == 500


async def test_submit_payment_missing_treasury(service):
    client = mock_client(token_account=False)

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)):
        with pytest.raises(PaymentError) as exc_info:
            await service.submit_payment(unsigned_transfer(service))

    assert exc_info.value.code == "TREASURY_ACCOUNT_MISSING"
    client.send_raw_transaction.assert_not_awaited()


async def test_submit_payment_missing_treasury_token_account(service):
    client = mock_client()
    client.get_account_info.side_effect = [
        SimpleNamespace(value=object()),
        SimpleNamespace(value=None),
    ]

    with patch(f"{MODULE}.connect_rpc", AsyncMock(return_value=client)):
        with pytest.raises(PaymentError) as exc_info:
            await service.submit_payment(unsigned_transfer(service))

    assert exc_info.value.code == "TREASURY_TOKEN_ACCOUNT_MISSING"
    assert exc_info.value.status_code == 400
    assert client.get_account_info.await_count == 2
    client.send_raw_transaction.assert_not_awaited()
