"""Fuzzy string engine using RapidFuzz."""
import structlog
from rapidfuzz import fuzz, utils

from intelligent_finder.errors import AlgorithmUnavailableError
from intelligent_finder.models import Algorithm, Document
from intelligent_finder.services.engines.base import EngineScore, MatchEngine

logger = structlog.get_logger(__name__)


class RapidFuzzMatchEngine(MatchEngine):
    """Document matcher using RapidFuzz WRatio over document text.

    WRatio automatically selects the best matching strategy by combining
    multiple algorithms (simple ratio, partial ratio, token sort ratio,
    token set ratio). Scores are scaled from 0-100 to 0-1.

    Attributes:
        use_preprocessing: Whether to apply default string preprocessing
            (lowercase, strip non-alphanumeric)
    """

    algorithm = Algorithm.FUZZY

    def __init__(self, use_preprocessing: bool = True) -> None:
        self.use_preprocessing = use_preprocessing
        self._log = logger.bind(engine="RapidFuzzMatchEngine")

    def get_strategy_name(self) -> str:
        return "rapidfuzz_wratio"

    async def match_documents(self, doc1: Document, doc2: Document) -> EngineScore:
        processor = utils.default_process if self.use_preprocessing else None

        left = processor(doc1.text) if processor else doc1.text
        right = processor(doc2.text) if processor else doc2.text
        if not left or not right:
            raise AlgorithmUnavailableError(
                "Fuzzy matching needs text on both documents",
                details={"source": doc1.id, "target": doc2.id},
            )

        ratio = fuzz.WRatio(left, right)
        return EngineScore(score=round(ratio / 100.0, 6), details={"wratio": ratio})
