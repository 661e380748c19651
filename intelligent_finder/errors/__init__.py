"""Error handling module."""
from intelligent_finder.errors.exceptions import (
    FinderError,
    NotFoundError,
    InvalidWeightsError,
    AlgorithmUnavailableError,
    EmbeddingError,
    PersistenceError,
    InvalidStatusTransitionError,
)

__all__ = [
    "FinderError",
    "NotFoundError",
    "InvalidWeightsError",
    "AlgorithmUnavailableError",
    "EmbeddingError",
    "PersistenceError",
    "InvalidStatusTransitionError",
]
