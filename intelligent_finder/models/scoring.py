"""Pydantic models for confidence scoring and adaptive weights."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Factor keys reported on every match, in display order
FACTOR_NAMES: tuple[str, ...] = ("fuzzy", "semantic", "date", "amount", "metadata")


class ConfidenceTier(str, Enum):
    """Discrete bucket derived from a continuous confidence score."""
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MatchFactors(BaseModel):
    """Raw per-algorithm scores; absent algorithms are reported as 0."""

    model_config = ConfigDict(frozen=True)

    fuzzy: float = Field(default=0.0, ge=0.0, le=1.0)
    semantic: float = Field(default=0.0, ge=0.0, le=1.0)
    date: float = Field(default=0.0, ge=0.0, le=1.0)
    amount: float = Field(default=0.0, ge=0.0, le=1.0)
    metadata: float = Field(default=0.0, ge=0.0, le=1.0)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in FACTOR_NAMES}


class ContextMultipliers(BaseModel):
    """Optional multipliers applied on top of the base weights.

    Attributes:
        document_type: document type → {factor → multiplier}
        user_preference: user id → {factor → multiplier}
    """

    document_type: dict[str, dict[str, float]] = Field(default_factory=dict)
    user_preference: dict[str, dict[str, float]] = Field(default_factory=dict)


class ConfidenceWeights(BaseModel):
    """Per-algorithm weights.

    Values are validated by the scorer rather than here so that a bad
    payload surfaces as ``InvalidWeightsError``.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "fuzzy": 0.25,
                "semantic": 0.25,
                "date": 0.2,
                "amount": 0.3,
                "metadata": 0.0,
                "context_multipliers": {
                    "document_type": {"invoice": {"amount": 1.5}},
                },
            }
        }
    )

    fuzzy: float = 0.0
    semantic: float = 0.0
    date: float = 0.0
    amount: float = 0.0
    metadata: float = 0.0
    context_multipliers: ContextMultipliers = Field(default_factory=ContextMultipliers)

    def as_dict(self) -> dict[str, float]:
        """Base weights keyed by factor name (multipliers not applied)."""
        return {name: getattr(self, name) for name in FACTOR_NAMES}


class ConfidenceScore(BaseModel):
    """Aggregated confidence with its breakdown.

    Attributes:
        overall: Weighted confidence in [0, 1]
        tier: Bucket of ``overall``
        factors: Raw per-algorithm scores
        weights: Renormalized weights actually applied (absent algorithms 0)
        explanation: Names the top two weighted contributors
    """

    overall: float = Field(..., ge=0.0, le=1.0)
    tier: ConfidenceTier
    factors: MatchFactors
    weights: dict[str, float]
    explanation: str
