"""In-process match cache with per-entry TTL."""
import time
from typing import Callable

import structlog

from intelligent_finder.models import MatchResult
from intelligent_finder.services.cache.base import CacheStatistics, MatchCache

logger = structlog.get_logger(__name__)


class InMemoryMatchCache(MatchCache):
    """Dictionary-backed cache.

    Attributes:
        ttl_seconds: Lifetime of an entry; expired entries count as misses
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, list[MatchResult]]] = {}
        self._hits = 0
        self._misses = 0

    async def get_cached_match(self, document_id: str) -> list[MatchResult] | None:
        entry = self._entries.get(document_id)
        if entry is None:
            self._misses += 1
            return None

        expires_at, results = entry
        if self._clock() >= expires_at:
            del self._entries[document_id]
            self._misses += 1
            logger.debug("cache_entry_expired", document_id=document_id)
            return None

        self._hits += 1
        return list(results)

    async def set_cached_match(self, document_id: str, results: list[MatchResult]) -> None:
        self._entries[document_id] = (self._clock() + self.ttl_seconds, list(results))

    async def invalidate_document(self, document_id: str) -> None:
        self._entries.pop(document_id, None)

    async def clear_all(self) -> None:
        self._entries.clear()

    async def get_statistics(self) -> CacheStatistics:
        return CacheStatistics(size=len(self._entries), hits=self._hits, misses=self._misses)
