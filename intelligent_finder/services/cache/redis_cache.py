"""
Redis Match Cache
=================

Redis-backed match cache. Each document's candidate list is stored as a
JSON array under ``<key_prefix><document_id>`` with a TTL.
"""

from typing import Optional

import redis.asyncio as aioredis
import structlog
from pydantic import TypeAdapter
from redis.exceptions import RedisError

from intelligent_finder.config import CacheSettings, cache_settings
from intelligent_finder.errors import PersistenceError
from intelligent_finder.models import MatchResult
from intelligent_finder.services.cache.base import CacheStatistics, MatchCache

logger = structlog.get_logger(__name__)

_results_adapter = TypeAdapter(list[MatchResult])

# Keys deleted per DEL call during clear_all
CLEAR_CHUNK_SIZE = 500


class RedisMatchCache(MatchCache):
    """
    Match cache stored in Redis.

    Redis failures are raised as ``PersistenceError``; the match service
    decides whether to degrade or continue.

    Usage:
        client = aioredis.from_url(cache_settings.redis_url)
        cache = RedisMatchCache(client)
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        settings: Optional[CacheSettings] = None,
    ) -> None:
        self._redis = redis_client
        self._settings = settings or cache_settings
        self._hits = 0
        self._misses = 0

    def _key(self, document_id: str) -> str:
        """Generate Redis key for a document."""
        return f"{self._settings.key_prefix}{document_id}"

    async def get_cached_match(self, document_id: str) -> list[MatchResult] | None:
        try:
            payload = await self._redis.get(self._key(document_id))
        except RedisError as exc:
            raise PersistenceError(
                f"Cache read failed for {document_id}",
                details={"document_id": document_id},
            ) from exc

        if payload is None:
            self._misses += 1
            return None

        self._hits += 1
        return _results_adapter.validate_json(payload)

    async def set_cached_match(self, document_id: str, results: list[MatchResult]) -> None:
        try:
            await self._redis.setex(
                self._key(document_id),
                self._settings.ttl_seconds,
                _results_adapter.dump_json(results),
            )
        except RedisError as exc:
            raise PersistenceError(
                f"Cache write failed for {document_id}",
                details={"document_id": document_id},
            ) from exc

    async def invalidate_document(self, document_id: str) -> None:
        try:
            await self._redis.delete(self._key(document_id))
        except RedisError as exc:
            raise PersistenceError(
                f"Cache invalidation failed for {document_id}",
                details={"document_id": document_id},
            ) from exc

    async def clear_all(self) -> None:
        deleted = 0
        try:
            chunk: list[str] = []
            async for key in self._redis.scan_iter(match=f"{self._settings.key_prefix}*"):
                chunk.append(key)
                if len(chunk) >= CLEAR_CHUNK_SIZE:
                    deleted += await self._redis.delete(*chunk)
                    chunk = []
            if chunk:
                deleted += await self._redis.delete(*chunk)
        except RedisError as exc:
            raise PersistenceError("Cache clear failed") from exc

        logger.info("cache_cleared", keys_deleted=deleted)

    async def get_statistics(self) -> CacheStatistics:
        size = 0
        try:
            async for _ in self._redis.scan_iter(match=f"{self._settings.key_prefix}*"):
                size += 1
        except RedisError as exc:
            raise PersistenceError("Cache statistics unavailable") from exc
        return CacheStatistics(size=size, hits=self._hits, misses=self._misses)
