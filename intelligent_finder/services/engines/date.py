"""Date proximity engine."""
from intelligent_finder.errors import AlgorithmUnavailableError
from intelligent_finder.models import Algorithm, Document
from intelligent_finder.services.engines.base import EngineScore, MatchEngine


class DateProximityEngine(MatchEngine):
    """Scores two documents by how close their dates are.

    Same day scores 1.0; the score decays linearly to 0.0 at
    ``window_days`` apart.
    """

    algorithm = Algorithm.DATE

    def __init__(self, window_days: int = 30) -> None:
        if window_days < 1:
            raise ValueError("window_days must be at least 1")
        self.window_days = window_days

    def get_strategy_name(self) -> str:
        return "date_proximity"

    async def match_documents(self, doc1: Document, doc2: Document) -> EngineScore:
        first, second = doc1.document_date, doc2.document_date
        if first is None or second is None:
            raise AlgorithmUnavailableError(
                "Date matching needs a date on both documents",
                details={"source": doc1.id, "target": doc2.id},
            )

        days = abs((first - second).days)
        score = max(0.0, 1.0 - days / self.window_days)
        return EngineScore(score=score, details={"days_difference": days})
