"""Similarity engines.

One engine per algorithm family, each exposing ``match_documents``.

Key Components:
    - MatchEngine: Abstract base class for engines
    - RapidFuzzMatchEngine: RapidFuzz WRatio over document text
    - SemanticMatchEngine: Cosine similarity of embeddings
    - DateProximityEngine: Linear decay over a day window
    - AmountToleranceEngine: Amount difference with tolerance
    - OllamaEmbeddingClient: Embedding source for the semantic engine
"""
from typing import Optional

from intelligent_finder.config import EngineSettings, engine_settings
from intelligent_finder.models import Algorithm
from intelligent_finder.services.engines.amount import AmountToleranceEngine
from intelligent_finder.services.engines.base import EngineScore, MatchEngine
from intelligent_finder.services.engines.date import DateProximityEngine
from intelligent_finder.services.engines.embeddings import OllamaEmbeddingClient
from intelligent_finder.services.engines.fuzzy import RapidFuzzMatchEngine
from intelligent_finder.services.engines.semantic import (
    Embedder,
    SemanticMatchEngine,
    cosine_similarity,
)

ENGINE_TYPES: dict[str, type[MatchEngine]] = {
    Algorithm.FUZZY.value: RapidFuzzMatchEngine,
    Algorithm.SEMANTIC.value: SemanticMatchEngine,
    Algorithm.DATE.value: DateProximityEngine,
    Algorithm.AMOUNT.value: AmountToleranceEngine,
}


def create_engine(name: str, **kwargs) -> MatchEngine:
    """Factory function to create an engine by algorithm name.

    Args:
        name: Algorithm name ("fuzzy", "semantic", "date", "amount")
        **kwargs: Additional arguments passed to the engine

    Raises:
        ValueError: If unknown engine name
    """
    if name not in ENGINE_TYPES:
        raise ValueError(f"Unknown matching engine: {name}. Available: {list(ENGINE_TYPES.keys())}")

    return ENGINE_TYPES[name](**kwargs)


def create_default_engines(
    embedder: Optional[Embedder] = None,
    settings: Optional[EngineSettings] = None,
) -> dict[Algorithm, MatchEngine]:
    """Build the default engine set.

    The semantic engine is only included when an embedder is supplied.
    """
    settings = settings or engine_settings
    engines: dict[Algorithm, MatchEngine] = {
        Algorithm.FUZZY: create_engine("fuzzy"),
        Algorithm.DATE: create_engine("date", window_days=settings.date_window_days),
        Algorithm.AMOUNT: create_engine(
            "amount",
            absolute_tolerance=settings.amount_absolute_tolerance,
            percentage_tolerance=settings.amount_percentage_tolerance,
        ),
    }
    if embedder is not None:
        engines[Algorithm.SEMANTIC] = create_engine("semantic", embedder=embedder)
    return engines


__all__ = [
    "MatchEngine",
    "EngineScore",
    "RapidFuzzMatchEngine",
    "SemanticMatchEngine",
    "DateProximityEngine",
    "AmountToleranceEngine",
    "OllamaEmbeddingClient",
    "Embedder",
    "cosine_similarity",
    "create_engine",
    "create_default_engines",
    "ENGINE_TYPES",
]
