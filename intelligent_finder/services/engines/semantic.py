"""Semantic similarity engine over text embeddings."""
from collections import OrderedDict
from typing import Protocol, Sequence

import numpy as np
import structlog

from intelligent_finder.errors import AlgorithmUnavailableError, EmbeddingError
from intelligent_finder.models import Algorithm, Document
from intelligent_finder.services.engines.base import EngineScore, MatchEngine

logger = structlog.get_logger(__name__)


class Embedder(Protocol):
    """Anything that turns text into a vector."""

    async def embed(self, text: str) -> Sequence[float]:
        ...


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either has zero norm."""
    a = np.asarray(v1, dtype=float)
    b = np.asarray(v2, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Embedding dimensions differ: {a.shape} vs {b.shape}")

    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class SemanticMatchEngine(MatchEngine):
    """Scores documents by cosine similarity of their embeddings.

    Negative similarities are clipped to 0. Embeddings are memoized per
    text (LRU, ``memo_size`` entries) since the source document is compared
    against every candidate.
    """

    algorithm = Algorithm.SEMANTIC

    def __init__(self, embedder: Embedder, memo_size: int = 1024) -> None:
        self._embedder = embedder
        self._memo: OrderedDict[str, Sequence[float]] = OrderedDict()
        self._memo_size = memo_size

    def get_strategy_name(self) -> str:
        return "embedding_cosine"

    async def match_documents(self, doc1: Document, doc2: Document) -> EngineScore:
        if not doc1.text or not doc2.text:
            raise AlgorithmUnavailableError(
                "Semantic matching needs text on both documents",
                details={"source": doc1.id, "target": doc2.id},
            )

        first = await self._embedding(doc1.text)
        second = await self._embedding(doc2.text)

        similarity = cosine_similarity(first, second)
        return EngineScore(
            score=min(1.0, max(0.0, similarity)),
            details={"cosine": similarity},
        )

    async def _embedding(self, text: str) -> Sequence[float]:
        cached = self._memo.get(text)
        if cached is not None:
            self._memo.move_to_end(text)
            return cached

        try:
            vector = await self._embedder.embed(text)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding generation failed: {exc}") from exc

        self._memo[text] = vector
        if len(self._memo) > self._memo_size:
            self._memo.popitem(last=False)
        return vector
