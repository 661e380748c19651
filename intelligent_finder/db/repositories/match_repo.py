"""
Match Repository
================

Storage of computed matches, their review status and user feedback.

Follows Repository Pattern: the match service depends on the abstract
``MatchRepository``; ``InMemoryMatchRepository`` is the bundled store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

import structlog

from intelligent_finder.errors import NotFoundError
from intelligent_finder.models import MatchResult, MatchStatus, UserFeedback

logger = structlog.get_logger(__name__)

TimeRange = tuple[datetime, datetime]


@dataclass(frozen=True)
class RunRecord:
    """Timing of one find_matches computation (cache misses only)."""

    document_id: str
    duration_ms: float
    result_count: int
    recorded_at: datetime


def _in_range(moment: datetime, time_range: TimeRange | None) -> bool:
    if time_range is None:
        return True
    start, end = time_range
    return start <= moment <= end


class MatchRepository(ABC):
    """Contract of the match and feedback store."""

    @abstractmethod
    async def save_matches(self, matches: Iterable[MatchResult]) -> list[MatchResult]:
        """Persist newly computed matches.

        A recomputed match replaces the pending match stored for the same
        (source, target) pair and takes over its ``match_id``; decided
        matches are never replaced.

        Returns:
            The stored matches, in input order
        """

    @abstractmethod
    async def get_match(self, match_id: str) -> MatchResult | None:
        """Load a match by id, or None."""

    @abstractmethod
    async def update_match_status(self, match_id: str, status: MatchStatus) -> MatchResult:
        """Move a match out of pending.

        Raises:
            NotFoundError: Unknown match id
            InvalidStatusTransitionError: Match already decided
        """

    @abstractmethod
    async def store_feedback(self, feedback: UserFeedback) -> None:
        """Persist a feedback record."""

    @abstractmethod
    async def get_feedback(self, match_id: str) -> list[UserFeedback]:
        """Feedback recorded against a match, oldest first."""

    @abstractmethod
    async def list_matches(self, time_range: TimeRange | None = None) -> list[MatchResult]:
        """Matches whose timestamp falls in ``time_range`` (all when None)."""

    @abstractmethod
    async def record_run(self, document_id: str, duration_ms: float, result_count: int) -> None:
        """Record the duration of a find_matches computation."""

    @abstractmethod
    async def list_runs(self, time_range: TimeRange | None = None) -> list[RunRecord]:
        """Run records in ``time_range`` (all when None)."""


class InMemoryMatchRepository(MatchRepository):
    """Dictionary-backed match store."""

    def __init__(self) -> None:
        self._matches: dict[str, MatchResult] = {}
        # (source, target) -> id of the pending match for that pair
        self._pending: dict[tuple[str, str], str] = {}
        self._feedback: dict[str, list[UserFeedback]] = {}
        self._runs: list[RunRecord] = []

    async def save_matches(self, matches: Iterable[MatchResult]) -> list[MatchResult]:
        stored: list[MatchResult] = []
        replaced = 0
        for match in matches:
            pair = (match.source_document_id, match.target_document_id)
            existing_id = self._pending.get(pair)
            if existing_id is not None and existing_id != match.match_id:
                match = match.model_copy(update={"match_id": existing_id})
                replaced += 1
            self._matches[match.match_id] = match
            if match.status == MatchStatus.PENDING:
                self._pending[pair] = match.match_id
            stored.append(match)

        if replaced:
            logger.debug("pending_matches_replaced", count=replaced)
        return stored

    async def get_match(self, match_id: str) -> MatchResult | None:
        return self._matches.get(match_id)

    async def update_match_status(self, match_id: str, status: MatchStatus) -> MatchResult:
        match = self._matches.get(match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}", details={"match_id": match_id})

        updated = match.with_status(status)
        self._matches[match_id] = updated
        self._pending.pop((match.source_document_id, match.target_document_id), None)
        logger.debug("match_status_updated", match_id=match_id, status=status.value)
        return updated

    async def store_feedback(self, feedback: UserFeedback) -> None:
        self._feedback.setdefault(feedback.match_id, []).append(feedback)

    async def get_feedback(self, match_id: str) -> list[UserFeedback]:
        return list(self._feedback.get(match_id, []))

    async def list_matches(self, time_range: TimeRange | None = None) -> list[MatchResult]:
        return [m for m in self._matches.values() if _in_range(m.timestamp, time_range)]

    async def record_run(self, document_id: str, duration_ms: float, result_count: int) -> None:
        self._runs.append(
            RunRecord(
                document_id=document_id,
                duration_ms=duration_ms,
                result_count=result_count,
                recorded_at=datetime.now(timezone.utc),
            )
        )

    async def list_runs(self, time_range: TimeRange | None = None) -> list[RunRecord]:
        return [r for r in self._runs if _in_range(r.recorded_at, time_range)]
