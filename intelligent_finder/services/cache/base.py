"""Match cache contract.

Entries are keyed by source document id and hold the scored, sorted,
pre-threshold candidate list of that document.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass

from intelligent_finder.models import MatchResult


@dataclass
class CacheStatistics:
    """Cache usage counters."""

    size: int = 0
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class MatchCache(ABC):
    """Abstract match cache."""

    @abstractmethod
    async def get_cached_match(self, document_id: str) -> list[MatchResult] | None:
        """Cached candidate list for a document, or None on miss."""

    @abstractmethod
    async def set_cached_match(self, document_id: str, results: list[MatchResult]) -> None:
        """Store the candidate list for a document."""

    @abstractmethod
    async def invalidate_document(self, document_id: str) -> None:
        """Drop the entry of one document."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Drop every entry."""

    @abstractmethod
    async def get_statistics(self) -> CacheStatistics:
        """Current usage counters."""
