"""Unit tests for the Redis cache wrapper"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services.cache_service import CacheService


@pytest.fixture
def redis_client():
    """Mock Redis client"""
    client = MagicMock()
    client.get = AsyncMock(return_value="cached")
    client.setex = AsyncMock()
    client.delete = AsyncMock()
    client.ping = AsyncMock()
    client.aclose = AsyncMock()
    return client


class TestCacheService:
    """Test best-effort cache behaviour"""

    @pytest.mark.asyncio
    async def test_get_and_set(self, redis_client):
        cache = CacheService("redis://localhost:6379/0")
        with patch("app.services.cache_service.redis.from_url", return_value=redis_client):
            assert await cache.get("key") == "cached"
            assert await cache.set("key", "value", ttl=60) is True

        redis_client.setex.assert_awaited_once_with("key", 60, "value")

    @pytest.mark.asyncio
    async def test_disabled_cache_is_noop(self, redis_client):
        cache = CacheService("redis://localhost:6379/0", enabled=False)
        with patch("app.services.cache_service.redis.from_url", return_value=redis_client) as from_url:
            assert await cache.get("key") is None
            assert await cache.set("key", "value") is False
            assert await cache.delete_pattern("statistics:*") is True
            assert await cache.health_check() is False

        from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_errors_are_reported_as_misses(self, redis_client):
        redis_client.get = AsyncMock(side_effect=ConnectionError("redis down"))
        redis_client.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        cache = CacheService("redis://localhost:6379/0")

        with patch("app.services.cache_service.redis.from_url", return_value=redis_client):
            assert await cache.get("key") is None
            assert await cache.set("key", "value") is False

    @pytest.mark.asyncio
    async def test_delete_pattern_scans_keys(self, redis_client):
        async def scan_iter(match):
            for key in ("statistics:u:a", "statistics:u:b"):
                yield key

        redis_client.scan_iter = scan_iter
        cache = CacheService("redis://localhost:6379/0")

        with patch("app.services.cache_service.redis.from_url", return_value=redis_client):
            assert await cache.delete_pattern("statistics:u:*") is True

        redis_client.delete.assert_awaited_once_with("statistics:u:a", "statistics:u:b")

    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        cache = CacheService("redis://localhost:6379/0")
        with patch("app.services.cache_service.redis.from_url", return_value=redis_client):
            await cache.get_redis_client()
            await cache.close()

        redis_client.aclose.assert_awaited_once()
