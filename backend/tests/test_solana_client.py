"""
Tests for RPC endpoint selection and account lookups.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from solders.keypair import Keypair

from storiesfun.services.solana_client import (
    RPCUnavailableError,
    _display_endpoint,
    connect_rpc,
    get_token_balance,
)


def fake_client(healthy: bool):
    client = MagicMock()
    client.close = AsyncMock()
    if healthy:
        client.get_version = AsyncMock(return_value=SimpleNamespace(value="1.18"))
    else:
        client.get_version = AsyncMock(side_effect=ConnectionError("refused"))
    return client


def test_display_endpoint_hides_api_key():
    assert _display_endpoint("https://rpc.example/?api-key=secret") == "https://rpc.example/"


async def test_connect_rpc_falls_back():
    """
    Test endpoint fallback.

    Arrange: First endpoint failing, second healthy
    Act: connect_rpc
    Assert: Second client returned, first closed
    """
    broken, healthy = fake_client(False), fake_client(True)

    with patch("storiesfun.services.solana_client.AsyncClient", side_effect=[broken, healthy]):
        client = await connect_rpc(["https://a.example", "https://b.example"], timeout=1)

    assert client is healthy
    broken.close.assert_awaited_once()
    healthy.close.assert_not_awaited()


async def test_connect_rpc_all_endpoints_down():
    clients = [fake_client(False), fake_client(False)]

    with patch("storiesfun.services.solana_client.AsyncClient", side_effect=clients):
        with pytest.raises(RPCUnavailableError):
            await connect_rpc(["https://a.example", "https://b.example"], timeout=1)

    for client in clients:
        client.close.assert_awaited_once()


async def test_token_balance_missing_account():
    client = AsyncMock()
    client.get_account_info.return_value = SimpleNamespace(value=None)

    assert await get_token_balance(client, Keypair().pubkey()) is None
    client.get_token_account_balance.assert_not_awaited()


async def test_token_balance_amount():
    client = AsyncMock()
    client.get_account_info.return_value = SimpleNamespace(value=object())
    client.get_token_account_balance.return_value = SimpleNamespace(
        value=SimpleNamespace(amount="2500")
    )

    assert await get_token_balance(client, Keypair().pubkey()) == 2500
