"""
STORIES Price Service

Fetches the STORIES/SOL pair from DexScreener. Prices are cached for a short
window so bursts of payment requests share one upstream call.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from ..core.cache import cache_key, cache_with_ttl
from ..core.config import settings
from ..core.logging import get_logger

logger = get_logger(__name__)


class PriceUnavailableError(Exception):
    """DexScreener did not return a usable STORIES price."""


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class PriceService:
    """DexScreener client for the STORIES trading pair."""

    def __init__(
        self,
        pair_address: Optional[str] = None,
        retries: Optional[int] = None,
        backoff_seconds: float = 2.0,
    ):
        self.pair_address = pair_address or settings.stories_pair_address
        self.retries = retries or settings.price_fetch_retries
        self.backoff_seconds = backoff_seconds
        self.timeout = aiohttp.ClientTimeout(total=settings.rpc_timeout_seconds)

    @property
    def pair_url(self) -> str:
        return f"{settings.dexscreener_api_url}/dex/pairs/solana/{self.pair_address}"

    async def _fetch_pair(self) -> Dict[str, Any]:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(self.pair_url) as response:
                if response.status != 200:
                    raise PriceUnavailableError(f"DexScreener HTTP error: {response.status}")
                data = await response.json()

        pairs = data.get("pairs") or []
        if not pairs and data.get("pair"):
            pairs = [data["pair"]]
        if not pairs:
            raise PriceUnavailableError("Invalid price data from DexScreener")
        return pairs[0]

    async def fetch_pair_with_retry(self) -> Dict[str, Any]:
        """Fetch the pair, retrying with a linear backoff between attempts."""
        for attempt in range(1, self.retries + 1):
            try:
                pair = await self._fetch_pair()
                price = _to_float(pair.get("priceUsd"))
                if price is None or price <= 0:
                    raise PriceUnavailableError("Invalid price value")
                return pair
            except (PriceUnavailableError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(
                    "stories_price_fetch_failed",
                    attempt=attempt,
                    max_attempts=self.retries,
                    error=str(e) or type(e).__name__,
                )
                if attempt == self.retries:
                    raise PriceUnavailableError(
                        f"Failed to fetch STORIES price after {self.retries} attempts: {e}"
                    ) from e
                await asyncio.sleep(self.backoff_seconds * attempt)

        raise PriceUnavailableError("Failed to fetch STORIES price")

    async def get_pair_summary(self) -> Dict[str, Any]:
        """Market summary for the swap widget, cached."""

        async def fetch() -> Dict[str, Any]:
            pair = await self.fetch_pair_with_retry()
            return {
                "pair_address": self.pair_address,
                "price_usd": _to_float(pair.get("priceUsd")),
                "price_native": _to_float(pair.get("priceNative")),
                "liquidity_usd": _to_float((pair.get("liquidity") or {}).get("usd")),
                "volume_24h": _to_float((pair.get("volume") or {}).get("h24")),
                "price_change_24h": _to_float((pair.get("priceChange") or {}).get("h24")),
                "base_token": (pair.get("baseToken") or {}).get("symbol"),
                "quote_token": (pair.get("quoteToken") or {}).get("symbol"),
            }

        return await cache_with_ttl(
            cache_key("price", "pair", self.pair_address),
            fetch,
            ttl=settings.price_cache_seconds,
        )

    async def get_stories_price(self) -> float:
        """Current STORIES price in USD."""
        summary = await self.get_pair_summary()
        return float(summary["price_usd"])


price_service = PriceService()


async def get_stories_price() -> float:
    return await price_service.get_stories_price()
