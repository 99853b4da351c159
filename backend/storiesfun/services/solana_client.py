"""
Solana RPC access for Stories.fun

Connects to the first healthy RPC endpoint from the configured list and
wraps the balance/account lookups used by the story payment flow.
"""

import asyncio
from typing import List, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.pubkey import Pubkey

from ..core.config import settings
from ..core.logging import get_logger

logger = get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


class RPCUnavailableError(Exception):
    """No configured RPC endpoint answered."""


def _display_endpoint(endpoint: str) -> str:
    # Drop query strings so API keys never reach the logs
    return endpoint.split("?", 1)[0]


async def connect_rpc(
    endpoints: Optional[List[str]] = None,
    timeout: Optional[float] = None,
) -> AsyncClient:
    """
    Return a client for the first endpoint that answers getVersion.

    Endpoints are tried in order, each bounded by the RPC timeout. The caller
    owns the returned client and must close it.
    """
    endpoints = endpoints or settings.rpc_endpoints
    timeout = timeout or settings.rpc_timeout_seconds
    last_error: Optional[Exception] = None

    for endpoint in endpoints:
        client = AsyncClient(endpoint, commitment=Confirmed, timeout=timeout)
        try:
            await asyncio.wait_for(client.get_version(), timeout=timeout)
            logger.info("rpc_connected", endpoint=_display_endpoint(endpoint))
            return client
        except Exception as e:
            last_error = e
            logger.warning(
                "rpc_endpoint_failed",
                endpoint=_display_endpoint(endpoint),
                error=str(e) or type(e).__name__,
            )
            await client.close()

    raise RPCUnavailableError(f"All Solana RPC endpoints failed: {last_error}")


async def get_sol_balance(client: AsyncClient, owner: Pubkey) -> int:
    """SOL balance in lamports."""
    response = await client.get_balance(owner)
    return response.value


async def account_exists(client: AsyncClient, address: Pubkey) -> bool:
    response = await client.get_account_info(address)
    return response.value is not None


async def get_token_balance(client: AsyncClient, token_account: Pubkey) -> Optional[int]:
    """Raw token amount held by an SPL token account, or None when it does not exist."""
    if not await account_exists(client, token_account):
        return None
    response = await client.get_token_account_balance(token_account)
    return int(response.value.amount)
