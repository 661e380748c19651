"""Pydantic models for the document matching pipeline.

This module defines the data transfer objects and validation models
for match lookup, batch processing and feedback.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from intelligent_finder.errors import InvalidStatusTransitionError
from intelligent_finder.models.scoring import ConfidenceTier, MatchFactors


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Algorithm(str, Enum):
    """Similarity algorithm families."""
    FUZZY = "fuzzy"
    SEMANTIC = "semantic"
    DATE = "date"
    AMOUNT = "amount"


ALL_ALGORITHMS: tuple[Algorithm, ...] = tuple(Algorithm)


class MatchStatus(str, Enum):
    """Review status of a match.

    State Transitions:
        - pending → accepted (user feedback)
        - pending → rejected (user feedback)
    Accepted and rejected are terminal.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AlgorithmMatch(BaseModel):
    """Score produced by one algorithm for one document pair."""

    algorithm: str
    score: float = Field(..., ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class MatchResult(BaseModel):
    """Similarity between a source document and one candidate.

    Confidence and factors never change after creation; a status change
    produces a new copy through ``with_status``.
    """

    model_config = ConfigDict(frozen=True)

    match_id: str = Field(default_factory=lambda: f"match-{uuid4().hex}")
    source_document_id: str
    target_document_id: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    factors: MatchFactors
    explanation: str
    status: MatchStatus = MatchStatus.PENDING
    timestamp: datetime = Field(default_factory=_utcnow)
    tier: ConfidenceTier = ConfidenceTier.VERY_LOW
    document_type: Optional[str] = None
    contributing_algorithms: list[str] = Field(default_factory=list)

    def with_status(self, status: MatchStatus) -> "MatchResult":
        """Return a copy with the new status.

        Raises:
            InvalidStatusTransitionError: If the match is no longer pending
                or the target status is pending
        """
        if self.status != MatchStatus.PENDING or status == MatchStatus.PENDING:
            raise InvalidStatusTransitionError(
                f"Cannot move match {self.match_id} from {self.status.value} to {status.value}",
                details={"match_id": self.match_id},
            )
        return self.model_copy(update={"status": status})


class MatchFilters(BaseModel):
    """Candidate pre-filters applied by the document store."""

    date_range: Optional[tuple[datetime, datetime]] = None
    amount_range: Optional[tuple[float, float]] = None
    document_types: Optional[list[str]] = None
    exclude_documents: list[str] = Field(default_factory=list)

    @field_validator("date_range", "amount_range")
    @classmethod
    def validate_range_order(cls, v):
        """Ensure range start does not exceed range end."""
        if v is not None and v[0] > v[1]:
            raise ValueError("range start must not exceed range end")
        return v

    @property
    def narrows_candidates(self) -> bool:
        """True when the filters restrict the candidate set beyond exclusions."""
        return bool(self.date_range or self.amount_range or self.document_types)


class MatchOptions(BaseModel):
    """Options for find_matches.

    ``None`` values are filled from ``MatchingSettings``.
    """

    min_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_results: Optional[int] = Field(default=None, ge=1)
    algorithms: list[Algorithm] = Field(default_factory=lambda: list(ALL_ALGORITHMS))
    use_cache: bool = True
    filters: MatchFilters = Field(default_factory=MatchFilters)


class BatchProgress(BaseModel):
    """Progress snapshot emitted after each batch group."""

    job_id: str
    processed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    current_document: Optional[str] = None
    estimated_time_remaining: float = Field(
        default=0.0, ge=0.0, description="Milliseconds"
    )


class BatchMatchOptions(MatchOptions):
    """Options for batch_match; ``on_progress`` may be sync or async."""

    batch_size: Optional[int] = Field(default=None, ge=1)
    concurrency: Optional[int] = Field(default=None, ge=1)
    on_progress: Optional[Callable[[BatchProgress], Any]] = Field(default=None, exclude=True)

    def match_options(self) -> MatchOptions:
        """Per-document options passed to find_matches."""
        return MatchOptions.model_validate(
            self.model_dump(include=set(MatchOptions.model_fields))
        )


class BatchJobStatus(str, Enum):
    """Batch job states."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class BatchMatchResult(BaseModel):
    """Aggregated outcome of a batch job.

    Attributes:
        job_id: Batch job identifier
        status: Final job status
        total_matches: Number of matches across all documents
        average_confidence: Mean confidence of all matches (0 when none)
        processing_time: Wall time in milliseconds
        matches: All returned matches, in document order
        failed_documents: Documents whose find_matches call failed
    """

    job_id: str
    status: BatchJobStatus
    total_matches: int = 0
    average_confidence: float = 0.0
    processing_time: float = 0.0
    matches: list[MatchResult] = Field(default_factory=list)
    failed_documents: list[str] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.failed_documents)


class FeedbackCorrection(BaseModel):
    """A user-supplied correction of an extracted field."""

    field: str
    correct_value: Any = None


class UserFeedback(BaseModel):
    """Accept/reject decision on a match. Write-once."""

    model_config = ConfigDict(frozen=True)

    match_id: str
    accepted: bool
    reason: Optional[str] = None
    time_to_decision: Optional[float] = Field(default=None, ge=0, description="Milliseconds")
    corrections: list[FeedbackCorrection] = Field(default_factory=list)
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class AlgorithmStats(BaseModel):
    """Usage of one algorithm across stored matches."""

    count: int = 0
    avg_score: float = 0.0


class ConfidenceLevelCounts(BaseModel):
    """Number of stored matches per confidence tier."""

    high: int = 0
    medium: int = 0
    low: int = 0
    very_low: int = 0


class MatchStatistics(BaseModel):
    """Aggregates over stored matches."""

    total_matches: int = 0
    acceptance_rate: float = 0.0
    average_confidence: float = 0.0
    average_processing_time: float = Field(default=0.0, description="Milliseconds")
    by_algorithm: dict[str, AlgorithmStats] = Field(default_factory=dict)
    by_confidence_level: ConfidenceLevelCounts = Field(default_factory=ConfidenceLevelCounts)
