"""Custom exception hierarchy for matching and scoring errors."""
from typing import Any


class FinderError(Exception):
    """Base exception for all matching engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(FinderError):
    """Raised when a document, match or experiment cannot be found."""
    pass


class InvalidWeightsError(FinderError):
    """Raised when a weight payload is negative, non-finite or malformed."""
    pass


class AlgorithmUnavailableError(FinderError):
    """Raised by an engine that cannot score a document pair.

    The match service absorbs it: the algorithm contributes no factor.
    """
    pass


class EmbeddingError(AlgorithmUnavailableError):
    """Raised when embedding generation fails."""
    pass


class PersistenceError(FinderError):
    """Raised when cache or store I/O fails."""
    pass


class InvalidStatusTransitionError(FinderError):
    """Raised when a match status change is not pending → accepted/rejected."""
    pass
