"""Document matching orchestration.

Key Components:
    - MatchService: Cache lookup, concurrent engine fan-out, scoring,
      batching and feedback ingestion
    - create_match_service: Factory with in-memory defaults
"""
from intelligent_finder.services.matching.service import (
    MatchService,
    create_match_service,
    estimate_time_remaining,
    sort_results,
)

__all__ = [
    "MatchService",
    "create_match_service",
    "estimate_time_remaining",
    "sort_results",
]
