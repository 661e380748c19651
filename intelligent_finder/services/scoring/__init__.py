"""Confidence scoring and feedback learning."""
from intelligent_finder.services.scoring.learning import FeedbackLearner, LearningFailure
from intelligent_finder.services.scoring.scorer import (
    GLOBAL_WEIGHTS_KEY,
    ConfidenceScorer,
    describe_contributions,
)

__all__ = [
    "ConfidenceScorer",
    "FeedbackLearner",
    "LearningFailure",
    "GLOBAL_WEIGHTS_KEY",
    "describe_contributions",
]
