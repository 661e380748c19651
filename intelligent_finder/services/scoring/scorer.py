"""
Confidence Scorer
=================

Aggregates per-algorithm similarity scores into one calibrated confidence.

Scoring:
    overall = Σ w[a] · s[a] over the algorithms present in the comparison,
    where the effective weights (base weights × document-type multipliers ×
    user multipliers) are renormalized so the present algorithms' weights
    sum to 1. A missing algorithm therefore never drags confidence down.

Learning:
    Accept/reject feedback nudges each contributing algorithm's weight by
    ``learning_rate × share`` (its share of the overall score), up when
    accepted and down when rejected. Weights are clamped to [0, 1] and the
    set is renormalized to sum to 1.

The weight state is owned here. Every read-modify-write holds the lock of
its weight-set key; readers take a snapshot of the current immutable set.
"""

import asyncio
import math
from typing import Any, Iterable, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from intelligent_finder.config import ScoringSettings, scoring_settings
from intelligent_finder.db.repositories import MatchRepository
from intelligent_finder.errors import FinderError, InvalidWeightsError, NotFoundError
from intelligent_finder.models import (
    FACTOR_NAMES,
    AlgorithmMatch,
    ConfidenceScore,
    ConfidenceTier,
    ConfidenceWeights,
    MatchFactors,
    UserFeedback,
)

logger = structlog.get_logger(__name__)

GLOBAL_WEIGHTS_KEY = "__global__"

WeightsInput = Union[ConfidenceWeights, Mapping[str, Any]]
MatchInput = Union[AlgorithmMatch, Mapping[str, Any]]


def describe_contributions(contributions: Mapping[str, float]) -> str:
    """Explanation naming the top two contributing factors."""
    ranked = sorted(
        ((name, value) for name, value in contributions.items() if value > 0),
        key=lambda item: (-item[1], FACTOR_NAMES.index(item[0])),
    )
    top = [name for name, _ in ranked[:2]]
    if not top:
        return "No similarity signals contributed to this match"
    return f"Match based primarily on {' and '.join(top)} similarity"


class ConfidenceScorer:
    """
    Weighted aggregation of similarity signals with adaptive weights.

    Usage:
        scorer = ConfidenceScorer(matches=match_repository)
        score = await scorer.calculate_confidence(
            [{"algorithm": "fuzzy", "score": 0.9}, {"algorithm": "amount", "score": 1.0}],
            document_type="invoice",
        )
    """

    def __init__(
        self,
        weights: Optional[WeightsInput] = None,
        settings: Optional[ScoringSettings] = None,
        matches: Optional[MatchRepository] = None,
    ) -> None:
        """
        Initialize ConfidenceScorer.

        Args:
            weights: Initial weight set (defaults to configured weights)
            settings: Scoring settings
            matches: Match store used to resolve feedback to match factors
        """
        self._settings = settings or scoring_settings
        if weights is None:
            weights = ConfidenceWeights(**self._settings.default_weights())
        self._weights = self._validate(weights)
        self._experiments: dict[str, ConfidenceWeights] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._matches = matches

    @property
    def learning_rate(self) -> float:
        return self._settings.learning_rate

    def bind_match_repository(self, matches: MatchRepository) -> None:
        """Attach the match store used by learn_from_feedback."""
        self._matches = matches

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # =========================================================================
    # Scoring
    # =========================================================================

    async def calculate_confidence(
        self,
        matches: Iterable[MatchInput],
        document_type: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ConfidenceScore:
        """
        Aggregate algorithm scores into a confidence score.

        Args:
            matches: {algorithm, score} pairs of the algorithms that produced a score
            document_type: Source document type, selects type multipliers
            user_id: Reviewer, selects user preference multipliers

        Returns:
            ConfidenceScore with overall value, tier, factors and explanation
        """
        return self._score(matches, self._weights, document_type, user_id)

    async def experimental_score(
        self,
        matches: Iterable[MatchInput],
        experiment_id: str,
        document_type: Optional[str] = None,
    ) -> ConfidenceScore:
        """
        Score against a registered experiment weight set (A/B comparison).

        Never touches the live weights.

        Raises:
            NotFoundError: If the experiment is not registered
        """
        weights = self._experiments.get(experiment_id)
        if weights is None:
            raise NotFoundError(
                f"Experiment not found: {experiment_id}",
                details={"experiment_id": experiment_id},
            )
        return self._score(matches, weights, document_type, None)

    def tier_for(self, overall: float) -> ConfidenceTier:
        """Map a confidence value to its tier (lower bounds inclusive)."""
        if overall >= self._settings.high_threshold:
            return ConfidenceTier.HIGH
        if overall >= self._settings.medium_threshold:
            return ConfidenceTier.MEDIUM
        if overall >= self._settings.low_threshold:
            return ConfidenceTier.LOW
        return ConfidenceTier.VERY_LOW

    def _score(
        self,
        matches: Iterable[MatchInput],
        weights: ConfidenceWeights,
        document_type: Optional[str],
        user_id: Optional[str],
    ) -> ConfidenceScore:
        present: dict[str, float] = {}
        for item in matches:
            match = item if isinstance(item, AlgorithmMatch) else AlgorithmMatch.model_validate(item)
            if match.algorithm not in FACTOR_NAMES:
                logger.warning("unknown_algorithm_ignored", algorithm=match.algorithm)
                continue
            present[match.algorithm] = match.score

        factors = MatchFactors(**present)
        applied = {name: 0.0 for name in FACTOR_NAMES}

        if not present:
            return ConfidenceScore(
                overall=0.0,
                tier=ConfidenceTier.VERY_LOW,
                factors=factors,
                weights=applied,
                explanation=describe_contributions({}),
            )

        effective = self._effective(weights, document_type, user_id)
        total = sum(effective[name] for name in present)
        for name in present:
            # All present weights zero: fall back to equal weighting
            applied[name] = effective[name] / total if total > 0 else 1.0 / len(present)

        contributions = {name: applied[name] * score for name, score in present.items()}
        overall = min(1.0, max(0.0, sum(contributions.values())))

        return ConfidenceScore(
            overall=overall,
            tier=self.tier_for(overall),
            factors=factors,
            weights=applied,
            explanation=describe_contributions(contributions),
        )

    @staticmethod
    def _effective(
        weights: ConfidenceWeights,
        document_type: Optional[str],
        user_id: Optional[str],
    ) -> dict[str, float]:
        """Base weights merged with the type and user multipliers."""
        effective = weights.as_dict()
        multipliers = weights.context_multipliers

        for table, key in (
            (multipliers.document_type, document_type),
            (multipliers.user_preference, user_id),
        ):
            if key is None:
                continue
            for name, factor in table.get(key, {}).items():
                effective[name] *= factor
        return effective

    # =========================================================================
    # Weight management
    # =========================================================================

    async def get_weights(self, document_type: Optional[str] = None) -> ConfidenceWeights:
        """
        Current weights, merged with the multipliers of ``document_type``.

        Returns a copy; mutating it does not affect the scorer. A merged set
        carries no context multipliers, since they are already applied.
        """
        weights = self._weights
        if document_type is None:
            return weights.model_copy(deep=True)
        return ConfidenceWeights(**self._effective(weights, document_type, None))

    async def update_weights(self, weights: WeightsInput) -> None:
        """
        Replace the active weight set entirely (no partial merge).

        Raises:
            InvalidWeightsError: On negative, non-finite, all-zero or
                malformed weights; the current set is left unchanged
        """
        validated = self._validate(weights)
        async with self._lock_for(GLOBAL_WEIGHTS_KEY):
            self._weights = validated
        logger.info("weights_updated", **validated.as_dict())

    async def register_experiment(self, experiment_id: str, weights: WeightsInput) -> None:
        """Register (or replace) an experiment weight set for experimental_score."""
        validated = self._validate(weights)
        async with self._lock_for(experiment_id):
            self._experiments[experiment_id] = validated
        logger.info("experiment_registered", experiment_id=experiment_id)

    @staticmethod
    def _validate(weights: WeightsInput) -> ConfidenceWeights:
        if isinstance(weights, ConfidenceWeights):
            candidate = weights.model_copy(deep=True)
        else:
            try:
                candidate = ConfidenceWeights.model_validate(weights)
            except ValidationError as exc:
                raise InvalidWeightsError(
                    "Malformed weight payload",
                    details={"errors": exc.errors(include_url=False)},
                ) from exc

        base = candidate.as_dict()
        for name, value in base.items():
            if not math.isfinite(value) or value < 0:
                raise InvalidWeightsError(
                    f"Weight for {name} must be a finite non-negative number, got {value}",
                    details={"factor": name, "value": value},
                )
        if sum(base.values()) <= 0:
            raise InvalidWeightsError("At least one weight must be positive")

        multipliers = candidate.context_multipliers
        for table in (multipliers.document_type, multipliers.user_preference):
            for key, factors in table.items():
                for name, value in factors.items():
                    if name not in FACTOR_NAMES:
                        raise InvalidWeightsError(
                            f"Unknown factor in multipliers for {key}: {name}",
                            details={"key": key, "factor": name},
                        )
                    if not math.isfinite(value) or value < 0:
                        raise InvalidWeightsError(
                            f"Multiplier {key}.{name} must be a finite non-negative number",
                            details={"key": key, "factor": name, "value": value},
                        )
        return candidate

    # =========================================================================
    # Learning
    # =========================================================================

    async def learn_from_feedback(self, feedback: UserFeedback) -> bool:
        """
        Apply one bounded online update from accept/reject feedback.

        Returns:
            True if the global weight set changed

        Raises:
            NotFoundError: If the referenced match does not exist
        """
        if self._matches is None:
            raise FinderError("ConfidenceScorer has no match repository bound")

        match = await self._matches.get_match(feedback.match_id)
        if match is None:
            raise NotFoundError(
                f"Match not found: {feedback.match_id}",
                details={"match_id": feedback.match_id},
            )

        log = logger.bind(match_id=feedback.match_id, accepted=feedback.accepted)
        scores = match.factors.as_dict()
        contributing = [name for name in match.contributing_algorithms if name in FACTOR_NAMES]

        async with self._lock_for(GLOBAL_WEIGHTS_KEY):
            current = self._weights.as_dict()
            # Shares follow the type-adjusted weights that produced the confidence
            applied = self._effective(self._weights, match.document_type, None)
            contributions = {name: applied[name] * scores[name] for name in contributing}
            total = sum(contributions.values())
            if total <= 0:
                log.debug("feedback_without_signal")
                return False

            direction = 1.0 if feedback.accepted else -1.0
            updated = dict(current)
            for name, contribution in contributions.items():
                step = direction * self.learning_rate * contribution / total
                updated[name] = min(1.0, max(0.0, updated[name] + step))

            norm = sum(updated.values())
            if norm <= 0:
                log.warning("learning_step_discarded", reason="all_weights_zero")
                return False

            normalized = {name: value / norm for name, value in updated.items()}
            self._weights = self._weights.model_copy(update=normalized)

        log.info("weights_learned", **normalized)
        return True
