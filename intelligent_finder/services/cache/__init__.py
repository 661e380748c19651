"""Match result caching.

Key Components:
    - MatchCache: Abstract cache contract
    - InMemoryMatchCache: In-process cache with TTL
    - RedisMatchCache: Redis-backed cache
"""
from typing import Optional

import redis.asyncio as aioredis

from intelligent_finder.config import CacheBackendType, CacheSettings, cache_settings
from intelligent_finder.services.cache.base import CacheStatistics, MatchCache
from intelligent_finder.services.cache.memory import InMemoryMatchCache
from intelligent_finder.services.cache.redis_cache import RedisMatchCache


def create_cache(
    settings: Optional[CacheSettings] = None,
    redis_client: Optional[aioredis.Redis] = None,
) -> MatchCache:
    """Factory function to create the configured cache backend.

    Args:
        settings: Cache settings (defaults to config)
        redis_client: Existing Redis client; created from settings if omitted
    """
    settings = settings or cache_settings

    if settings.backend == CacheBackendType.REDIS:
        client = redis_client or aioredis.from_url(settings.redis_url)
        return RedisMatchCache(client, settings=settings)

    return InMemoryMatchCache(ttl_seconds=settings.ttl_seconds)


__all__ = [
    "MatchCache",
    "CacheStatistics",
    "InMemoryMatchCache",
    "RedisMatchCache",
    "create_cache",
]
