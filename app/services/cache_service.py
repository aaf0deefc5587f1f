"""Redis cache for derived read models"""
import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheService:
    """
    Best-effort Redis cache.

    Cache failures are logged and reported as misses; they never fail the
    request, because every cached value can be recomputed from the ledger.
    """

    def __init__(self, redis_url: str, enabled: bool = True):
        self._redis_url = redis_url
        self._enabled = enabled
        self._redis_client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def get_redis_client(self) -> redis.Redis:
        """
        Get or create the Redis client owned by this cache.

        Returns:
            Redis client instance
        """
        if self._redis_client is None:
            self._redis_client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        return self._redis_client

    async def close(self):
        """Close Redis connection"""
        if self._redis_client:
            await self._redis_client.aclose()
            self._redis_client = None

    async def get(self, key: str) -> Optional[str]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value if exists, None otherwise
        """
        if not self._enabled:
            return None
        try:
            client = await self.get_redis_client()
            return await client.get(key)
        except Exception as e:
            logger.warning(f"Cache get error for key '{key}': {e}")
            return None

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (default: 3600 = 1 hour)

        Returns:
            True if successful, False otherwise
        """
        if not self._enabled:
            return False
        try:
            client = await self.get_redis_client()
            await client.setex(key, ttl, value)
            return True
        except Exception as e:
            logger.warning(f"Cache set error for key '{key}': {e}")
            return False

    async def delete_pattern(self, pattern: str) -> bool:
        """
        Delete every key matching a glob pattern (SCAN based).

        Args:
            pattern: Redis glob pattern, e.g. "statistics:<user>:*"

        Returns:
            True if successful, False otherwise
        """
        if not self._enabled:
            return True
        try:
            client = await self.get_redis_client()
            keys = [key async for key in client.scan_iter(match=pattern)]
            if keys:
                await client.delete(*keys)
            return True
        except Exception as e:
            logger.warning(f"Cache delete pattern error for '{pattern}': {e}")
            return False

    async def health_check(self) -> bool:
        """
        Check if Redis connection is healthy.

        Returns:
            True if Redis is accessible, False otherwise
        """
        if not self._enabled:
            return False
        try:
            client = await self.get_redis_client()
            await client.ping()
            return True
        except Exception:
            return False
