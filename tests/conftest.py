"""Pytest configuration and fixtures for test suite.

This is the root-level conftest.py that provides:
- Python path setup (so we can import intelligent_finder without installing)
- Stub engines with scripted scores, delays and failures
- Document store, match store and service factories
"""
import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest

# Project root is the parent of tests/
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from intelligent_finder.config import MatchingSettings  # noqa: E402
from intelligent_finder.db.repositories import (  # noqa: E402
    InMemoryDocumentRepository,
    InMemoryMatchRepository,
)
from intelligent_finder.errors import AlgorithmUnavailableError  # noqa: E402
from intelligent_finder.models import Algorithm, Document  # noqa: E402
from intelligent_finder.services.cache import InMemoryMatchCache  # noqa: E402
from intelligent_finder.services.engines import EngineScore, MatchEngine  # noqa: E402
from intelligent_finder.services.matching import MatchService  # noqa: E402
from intelligent_finder.services.scoring import ConfidenceScorer  # noqa: E402

DEFAULT_WEIGHTS = {"fuzzy": 0.25, "semantic": 0.25, "date": 0.2, "amount": 0.3, "metadata": 0.0}


class ScriptedEngine(MatchEngine):
    """Engine returning preset scores per target document id.

    Targets without a preset score raise AlgorithmUnavailableError;
    targets in ``failing`` raise RuntimeError.
    """

    def __init__(
        self,
        algorithm: Algorithm,
        scores: Optional[dict[str, float]] = None,
        failing: tuple[str, ...] = (),
        delay: float = 0.0,
    ) -> None:
        self.algorithm = algorithm
        self.scores = scores or {}
        self.failing = set(failing)
        self.delay = delay
        self.calls = 0

    def get_strategy_name(self) -> str:
        return f"scripted_{self.algorithm.value}"

    async def match_documents(self, doc1: Document, doc2: Document) -> EngineScore:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if doc2.id in self.failing:
            raise RuntimeError(f"{self.algorithm.value} engine crashed on {doc2.id}")
        if doc2.id not in self.scores:
            raise AlgorithmUnavailableError(f"No score for {doc2.id}")
        return EngineScore(score=self.scores[doc2.id])


class SlowDocumentRepository(InMemoryDocumentRepository):
    """Document store that sleeps on every load and tracks concurrent loads."""

    def __init__(self, documents=(), delay: float = 0.1) -> None:
        super().__init__(documents)
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def load_document(self, document_id: str):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return await super().load_document(document_id)
        finally:
            self.in_flight -= 1


def make_engines(scores_by_algorithm: dict[str, dict[str, float]], **kwargs) -> list[ScriptedEngine]:
    """One ScriptedEngine per algorithm, e.g. {"fuzzy": {"C1": 0.9}}."""
    return [
        ScriptedEngine(Algorithm(name), scores=scores, **kwargs)
        for name, scores in scores_by_algorithm.items()
    ]


def make_service(
    documents,
    engines,
    matches=None,
    cache=None,
    scorer=None,
    **settings_overrides,
) -> MatchService:
    """Build a MatchService from test doubles."""
    settings = MatchingSettings(**settings_overrides)
    return MatchService(
        engines=engines,
        scorer=scorer or ConfidenceScorer(weights=DEFAULT_WEIGHTS),
        cache=cache if cache is not None else InMemoryMatchCache(),
        documents=documents,
        matches=matches if matches is not None else InMemoryMatchRepository(),
        settings=settings,
    )


@pytest.fixture
def invoice() -> Document:
    """Source invoice document."""
    return Document(
        id="D1",
        type="invoice",
        content="Invoice INV-2024-118 ACME GmbH total 1,250.00 EUR",
        metadata={"date": "2024-03-01", "amount": "1,250.00", "currency": "EUR"},
    )


@pytest.fixture
def scenario_documents(invoice) -> InMemoryDocumentRepository:
    """D1 plus two candidates C1 and C2."""
    return InMemoryDocumentRepository([
        invoice,
        Document(id="C1", type="bank_transaction", content="ACME GmbH INV-2024-118"),
        Document(id="C2", type="bank_transaction", content="Office supplies"),
    ])


@pytest.fixture
def scenario_engines() -> list[ScriptedEngine]:
    """Scores: C1 strong on every algorithm, C2 weak."""
    return make_engines({
        "fuzzy": {"C1": 0.9, "C2": 0.2},
        "semantic": {"C1": 0.8, "C2": 0.1},
        "date": {"C1": 0.95, "C2": 0.0},
        "amount": {"C1": 1.0, "C2": 0.0},
    })


@pytest.fixture
def match_repository() -> InMemoryMatchRepository:
    return InMemoryMatchRepository()


@pytest.fixture
def build_engines():
    """Factory fixture: make_engines."""
    return make_engines


@pytest.fixture
def build_service():
    """Factory fixture: make_service."""
    return make_service


@pytest.fixture
def scripted_engine():
    """The ScriptedEngine class, for tests that need custom engine behavior."""
    return ScriptedEngine


@pytest.fixture
def slow_documents():
    """The SlowDocumentRepository class."""
    return SlowDocumentRepository
