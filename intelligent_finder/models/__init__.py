"""Data models for documents, matches and confidence scoring."""
from intelligent_finder.models.document import Document
from intelligent_finder.models.matching import (
    ALL_ALGORITHMS,
    Algorithm,
    AlgorithmMatch,
    AlgorithmStats,
    BatchJobStatus,
    BatchMatchOptions,
    BatchMatchResult,
    BatchProgress,
    ConfidenceLevelCounts,
    FeedbackCorrection,
    MatchFilters,
    MatchOptions,
    MatchResult,
    MatchStatistics,
    MatchStatus,
    UserFeedback,
)
from intelligent_finder.models.scoring import (
    FACTOR_NAMES,
    ConfidenceScore,
    ConfidenceTier,
    ConfidenceWeights,
    ContextMultipliers,
    MatchFactors,
)

__all__ = [
    "Document",
    "ALL_ALGORITHMS",
    "Algorithm",
    "AlgorithmMatch",
    "AlgorithmStats",
    "BatchJobStatus",
    "BatchMatchOptions",
    "BatchMatchResult",
    "BatchProgress",
    "ConfidenceLevelCounts",
    "FeedbackCorrection",
    "MatchFilters",
    "MatchOptions",
    "MatchResult",
    "MatchStatistics",
    "MatchStatus",
    "UserFeedback",
    "FACTOR_NAMES",
    "ConfidenceScore",
    "ConfidenceTier",
    "ConfidenceWeights",
    "ContextMultipliers",
    "MatchFactors",
]
