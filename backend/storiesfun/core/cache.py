"""
Cache Manager for Stories.fun

Redis-based cache with an in-process fallback, used for token prices and
email verification codes.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.asyncio import Redis

from .config import settings
from .logging import get_logger

logger = get_logger(__name__)


class CacheManager:
    """
    Redis-based cache manager for the application.

    When Redis cannot be reached at startup, values are kept in a local
    dictionary with per-key expiry instead.
    """

    def __init__(self):
        self.redis_client: Optional[Redis] = None
        self._connection_pool = None
        self._local: Dict[str, Tuple[str, Optional[float]]] = {}

    @property
    def backend(self) -> str:
        return "redis" if self.redis_client else "memory"

    async def initialize(self):
        """Initialize Redis connection"""
        try:
            self._connection_pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                password=settings.redis_password,
                decode_responses=True,
                max_connections=20,
            )
            self.redis_client = Redis(connection_pool=self._connection_pool)

            await self.redis_client.ping()
            logger.info("cache_initialized", backend="redis")

        except Exception as e:
            logger.warning("cache_redis_unavailable", error=str(e), backend="memory")
            self.redis_client = None

    async def close(self):
        """Close Redis connection"""
        if self.redis_client:
            await self.redis_client.close()
        if self._connection_pool:
            await self._connection_pool.disconnect()
        self._local.clear()

    def _local_get(self, key: str) -> Optional[str]:
        entry = self._local.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._local[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        """
        Get value from cache

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        if not self.redis_client:
            return self._local_get(key)

        try:
            return await self.redis_client.get(key)
        except Exception as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, expire: Optional[int] = None) -> bool:
        """
        Set value in cache

        Args:
            key: Cache key
            value: Value to cache
            expire: Expiration time in seconds

        Returns:
            True if successful
        """
        if not self.redis_client:
            expires_at = time.monotonic() + expire if expire else None
            self._local[key] = (value, expires_at)
            return True

        try:
            if expire:
                await self.redis_client.setex(key, expire, value)
            else:
                await self.redis_client.set(key, value)
            return True

        except Exception as e:
            logger.error("cache_set_failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache"""
        if not self.redis_client:
            return self._local.pop(key, None) is not None

        try:
            await self.redis_client.delete(key)
            return True
        except Exception as e:
            logger.error("cache_delete_failed", key=key, error=str(e))
            return False

    async def get_json(self, key: str) -> Optional[Any]:
        """Get JSON value from cache"""
        try:
            value = await self.get(key)
            if value:
                return json.loads(value)
            return None

        except json.JSONDecodeError as e:
            logger.error("cache_json_decode_failed", key=key, error=str(e))
            return None

    async def set_json(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        """Set JSON value in cache"""
        try:
            json_value = json.dumps(value, default=str)
            return await self.set(key, json_value, expire)

        except (TypeError, ValueError) as e:
            logger.error("cache_json_encode_failed", key=key, error=str(e))
            return False

    async def health(self) -> Dict[str, Any]:
        """Report cache backend status."""
        if not self.redis_client:
            return {"status": "healthy", "backend": "memory"}
        try:
            start = asyncio.get_event_loop().time()
            await self.redis_client.ping()
            latency = (asyncio.get_event_loop().time() - start) * 1000
            return {"status": "healthy", "backend": "redis", "latency_ms": round(latency, 2)}
        except Exception as e:
            return {"status": "unhealthy", "backend": "redis", "error": str(e)}


# Global cache manager instance
cache_manager = CacheManager()


async def init_cache():
    """Initialize the cache manager"""
    await cache_manager.initialize()


async def close_cache():
    """Close the cache manager"""
    await cache_manager.close()


async def cache_with_ttl(key: str, fetch_func: Callable[[], Awaitable[Any]], ttl: int = 300) -> Any:
    """
    Return the cached value for key, or await fetch_func and cache its result.

    Errors from fetch_func propagate and nothing is cached.
    """
    cached_result = await cache_manager.get_json(key)
    if cached_result is not None:
        return cached_result

    result = await fetch_func()
    await cache_manager.set_json(key, result, expire=ttl)
    return result


def cache_key(*parts) -> str:
    """Generate a cache key from parts"""
    return "stories:" + ":".join(str(part) for part in parts)
