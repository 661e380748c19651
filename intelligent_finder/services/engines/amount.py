"""Amount engine with absolute and percentage tolerance."""
from decimal import Decimal

from intelligent_finder.errors import AlgorithmUnavailableError
from intelligent_finder.models import Algorithm, Document
from intelligent_finder.services.engines.base import EngineScore, MatchEngine


class AmountToleranceEngine(MatchEngine):
    """Scores two documents by the difference of their amounts.

    Scoring:
        - identical amounts: 1.0
        - within tolerance (the larger of the absolute tolerance and the
          percentage tolerance of the larger amount): 0.9-1.0
        - beyond tolerance: 0.9 * (1 - relative difference), floored at 0
        - different currencies (both known): 0.0
    """

    algorithm = Algorithm.AMOUNT

    def __init__(
        self,
        absolute_tolerance: float = 0.01,
        percentage_tolerance: float = 0.02,
    ) -> None:
        self.absolute_tolerance = Decimal(str(absolute_tolerance))
        self.percentage_tolerance = Decimal(str(percentage_tolerance))

    def get_strategy_name(self) -> str:
        return "amount_tolerance"

    async def match_documents(self, doc1: Document, doc2: Document) -> EngineScore:
        first, second = doc1.amount, doc2.amount
        if first is None or second is None:
            raise AlgorithmUnavailableError(
                "Amount matching needs an amount on both documents",
                details={"source": doc1.id, "target": doc2.id},
            )

        if doc1.currency and doc2.currency and doc1.currency != doc2.currency:
            return EngineScore(score=0.0, details={"reason": "currency_mismatch"})

        difference = abs(first - second)
        if difference == 0:
            return EngineScore(score=1.0, details={"difference": 0.0})

        magnitude = max(abs(first), abs(second))
        allowed = max(self.absolute_tolerance, self.percentage_tolerance * magnitude)
        relative = difference / magnitude

        if difference <= allowed:
            score = 1.0 - 0.1 * float(difference / allowed)
        else:
            score = max(0.0, 0.9 * (1.0 - float(relative)))

        return EngineScore(
            score=score,
            details={
                "difference": float(difference),
                "percent_difference": float(relative * 100),
            },
        )
