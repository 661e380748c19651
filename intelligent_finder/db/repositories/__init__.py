"""
Repositories
============

Data access layer for documents, matches and feedback.
"""

from intelligent_finder.db.repositories.document_repo import (
    DocumentRepository,
    InMemoryDocumentRepository,
)
from intelligent_finder.db.repositories.match_repo import (
    InMemoryMatchRepository,
    MatchRepository,
    RunRecord,
    TimeRange,
)

__all__ = [
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "InMemoryMatchRepository",
    "MatchRepository",
    "RunRecord",
    "TimeRange",
]
