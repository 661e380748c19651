"""
Document Repository
===================

Read access to the external document store.

All candidate pre-filtering (date range, amount range, document type,
exclusion list) happens here, before any similarity engine runs.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable

import structlog

from intelligent_finder.models import Document, MatchFilters

logger = structlog.get_logger(__name__)


class DocumentRepository(ABC):
    """Contract of the document store consumed by the match service."""

    @abstractmethod
    async def load_document(self, document_id: str) -> Document | None:
        """Load a document by id, or None if it does not exist."""

    @abstractmethod
    async def load_candidates(
        self,
        source: Document,
        filters: MatchFilters,
    ) -> list[Document]:
        """Load candidate documents for ``source`` with filters applied.

        The source document itself is never a candidate.
        """


class InMemoryDocumentRepository(DocumentRepository):
    """
    Dictionary-backed document store.

    Usage:
        repo = InMemoryDocumentRepository([invoice, transaction])
        doc = await repo.load_document("doc-0001")
    """

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        self._documents: dict[str, Document] = {}
        for document in documents:
            self.add(document)

    def add(self, document: Document) -> None:
        """Insert or replace a document."""
        self._documents[document.id] = document

    def __len__(self) -> int:
        return len(self._documents)

    async def load_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    async def load_candidates(
        self,
        source: Document,
        filters: MatchFilters,
    ) -> list[Document]:
        excluded = set(filters.exclude_documents)
        excluded.add(source.id)

        candidates = [
            doc for doc in self._documents.values()
            if doc.id not in excluded and self._passes(doc, filters)
        ]

        logger.debug(
            "candidates_loaded",
            source_document_id=source.id,
            total_documents=len(self._documents),
            candidates=len(candidates),
        )
        return candidates

    @staticmethod
    def _passes(doc: Document, filters: MatchFilters) -> bool:
        if filters.document_types and doc.type not in filters.document_types:
            return False

        if filters.date_range:
            doc_date = doc.document_date
            start, end = filters.date_range
            if doc_date is None or not (start.date() <= doc_date <= end.date()):
                return False

        if filters.amount_range:
            amount = doc.amount
            low, high = filters.amount_range
            if amount is None or not (Decimal(str(low)) <= amount <= Decimal(str(high))):
                return False

        return True
