"""
Unit Tests for Match Caches
===========================

Tests for the in-memory cache and the Redis-backed cache.
The Redis client is replaced with AsyncMock.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from intelligent_finder.config import CacheBackendType, CacheSettings
from intelligent_finder.errors import PersistenceError
from intelligent_finder.models import MatchFactors, MatchResult
from intelligent_finder.services.cache import (
    InMemoryMatchCache,
    RedisMatchCache,
    create_cache,
)
from intelligent_finder.services.cache.redis_cache import CLEAR_CHUNK_SIZE


def _result(target: str = "C1", confidence: float = 0.8) -> MatchResult:
    return MatchResult(
        source_document_id="D1",
        target_document_id=target,
        confidence=confidence,
        factors=MatchFactors(fuzzy=confidence),
        explanation="Match based primarily on fuzzy similarity",
        contributing_algorithms=["fuzzy"],
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryMatchCache:
    """Tests for InMemoryMatchCache."""

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = InMemoryMatchCache()
        results = [_result("C1"), _result("C2", 0.6)]

        await cache.set_cached_match("D1", results)

        assert await cache.get_cached_match("D1") == results
        assert await cache.get_cached_match("D2") is None

    @pytest.mark.asyncio
    async def test_returned_list_is_a_copy(self):
        cache = InMemoryMatchCache()
        await cache.set_cached_match("D1", [_result()])

        (await cache.get_cached_match("D1")).clear()

        assert len(await cache.get_cached_match("D1")) == 1

    @pytest.mark.asyncio
    async def test_entries_expire(self):
        clock = FakeClock()
        cache = InMemoryMatchCache(ttl_seconds=10, clock=clock)
        await cache.set_cached_match("D1", [_result()])

        clock.now = 9.9
        assert await cache.get_cached_match("D1") is not None
        clock.now = 10.0
        assert await cache.get_cached_match("D1") is None

    @pytest.mark.asyncio
    async def test_invalidate_and_clear(self):
        cache = InMemoryMatchCache()
        await cache.set_cached_match("D1", [_result()])
        await cache.set_cached_match("D2", [_result()])

        await cache.invalidate_document("D1")
        assert await cache.get_cached_match("D1") is None
        assert await cache.get_cached_match("D2") is not None

        await cache.clear_all()
        assert (await cache.get_statistics()).size == 0

    @pytest.mark.asyncio
    async def test_statistics(self):
        cache = InMemoryMatchCache()
        await cache.set_cached_match("D1", [_result()])

        await cache.get_cached_match("D1")
        await cache.get_cached_match("D1")
        await cache.get_cached_match("D9")

        stats = await cache.get_statistics()
        assert stats.size == 1
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)


def _scan_over(keys):
    async def scan_iter(match=None):
        for key in keys:
            yield key

    return scan_iter


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.scan_iter = _scan_over([])
    return client


@pytest.fixture
def redis_settings():
    return CacheSettings(backend=CacheBackendType.REDIS, ttl_seconds=120, key_prefix="test:")


class TestRedisMatchCache:
    """Tests for RedisMatchCache."""

    @pytest.mark.asyncio
    async def test_set_uses_prefixed_key_and_ttl(self, redis_client, redis_settings):
        cache = RedisMatchCache(redis_client, settings=redis_settings)

        await cache.set_cached_match("D1", [_result()])

        key, ttl, payload = redis_client.setex.call_args.args
        assert key == "test:D1"
        assert ttl == 120
        assert b'"target_document_id":"C1"' in payload

    @pytest.mark.asyncio
    async def test_get_deserializes_results(self, redis_client, redis_settings):
        original = [_result("C1"), _result("C2", 0.55)]
        writer = RedisMatchCache(redis_client, settings=redis_settings)
        await writer.set_cached_match("D1", original)
        redis_client.get.return_value = redis_client.setex.call_args.args[2]

        results = await writer.get_cached_match("D1")

        assert results == original
        redis_client.get.assert_awaited_with("test:D1")

    @pytest.mark.asyncio
    async def test_miss(self, redis_client, redis_settings):
        redis_client.get.return_value = None
        cache = RedisMatchCache(redis_client, settings=redis_settings)

        assert await cache.get_cached_match("D1") is None
        assert (await cache.get_statistics()).misses == 1

    @pytest.mark.asyncio
    async def test_redis_errors_become_persistence_errors(self, redis_client, redis_settings):
        redis_client.get.side_effect = RedisConnectionError("down")
        redis_client.delete.side_effect = RedisConnectionError("down")
        cache = RedisMatchCache(redis_client, settings=redis_settings)

        with pytest.raises(PersistenceError):
            await cache.get_cached_match("D1")
        with pytest.raises(PersistenceError):
            await cache.invalidate_document("D1")

    @pytest.mark.asyncio
    async def test_invalidate_deletes_key(self, redis_client, redis_settings):
        cache = RedisMatchCache(redis_client, settings=redis_settings)

        await cache.invalidate_document("D1")

        redis_client.delete.assert_awaited_once_with("test:D1")

    @pytest.mark.asyncio
    async def test_clear_all_deletes_in_chunks(self, redis_client, redis_settings):
        keys = [f"test:D{i}" for i in range(CLEAR_CHUNK_SIZE + 3)]
        redis_client.scan_iter = _scan_over(keys)
        redis_client.delete.side_effect = lambda *batch: len(batch)
        cache = RedisMatchCache(redis_client, settings=redis_settings)

        await cache.clear_all()

        batches = [call.args for call in redis_client.delete.await_args_list]
        assert [len(batch) for batch in batches] == [CLEAR_CHUNK_SIZE, 3]

    @pytest.mark.asyncio
    async def test_statistics_count_keys(self, redis_client, redis_settings):
        redis_client.scan_iter = _scan_over(["test:D1", "test:D2"])
        cache = RedisMatchCache(redis_client, settings=redis_settings)

        assert (await cache.get_statistics()).size == 2


class TestCreateCache:
    def test_memory_backend(self):
        cache = create_cache(CacheSettings(backend=CacheBackendType.MEMORY, ttl_seconds=5))

        assert isinstance(cache, InMemoryMatchCache)
        assert cache.ttl_seconds == 5

    def test_redis_backend_uses_given_client(self, redis_client, redis_settings):
        cache = create_cache(redis_settings, redis_client=redis_client)

        assert isinstance(cache, RedisMatchCache)
