"""Similarity engine contract.

Every engine family exposes one operation, ``match_documents``, which
scores a document pair in [0, 1]. Engines are stateless with respect to
the pair being scored and are injected into the match service.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from intelligent_finder.models import Algorithm, Document


@dataclass
class EngineScore:
    """Score of one engine for one document pair.

    Attributes:
        score: Similarity in [0, 1]
        details: Engine-specific diagnostics (not used for scoring)
    """
    score: float
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Engine score must be within [0, 1], got {self.score}")


class MatchEngine(ABC):
    """Abstract base class for similarity engines.

    All implementations must honor the contract:
        - match_documents() returns a score normalized to 0-1
        - an engine that cannot score a pair raises AlgorithmUnavailableError
    """

    algorithm: Algorithm

    @abstractmethod
    async def match_documents(self, doc1: Document, doc2: Document) -> EngineScore:
        """Score the similarity of two documents."""

    @abstractmethod
    def get_strategy_name(self) -> str:
        """Get the name of this matching strategy."""
