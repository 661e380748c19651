"""
Match Service
=============

Orchestrates the document matching pipeline:
1. Check cache
2. Load source document and pre-filtered candidates
3. Run the enabled engines concurrently for every candidate
4. Aggregate engine scores into a confidence (ConfidenceScorer)
5. Sort, persist, cache, then filter and truncate

Pipeline:
    find_matches → cache ──hit──→ filter / threshold / limit
                     │
                    miss
                     ↓
    load document → load candidates → per candidate: fuzzy | semantic | date | amount
                                                        (concurrent, failures isolated)
                                           ↓
                              calculate_confidence → MatchResult
                                           ↓
                      sort → save → cache full list → threshold / limit

Follows:
- Dependency Inversion: engines, cache, scorer and stores are injected
- Error Isolation: per-algorithm and per-document failures never abort
  the enclosing request or batch
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence, TypeVar, Union
from uuid import uuid4

import structlog

from intelligent_finder.config import MatchingSettings, matching_settings
from intelligent_finder.db.repositories import (
    DocumentRepository,
    InMemoryMatchRepository,
    MatchRepository,
    TimeRange,
)
from intelligent_finder.errors import (
    AlgorithmUnavailableError,
    FinderError,
    NotFoundError,
    PersistenceError,
)
from intelligent_finder.models import (
    Algorithm,
    AlgorithmMatch,
    AlgorithmStats,
    BatchJobStatus,
    BatchMatchOptions,
    BatchMatchResult,
    BatchProgress,
    ConfidenceLevelCounts,
    ConfidenceWeights,
    Document,
    MatchOptions,
    MatchResult,
    MatchStatistics,
    MatchStatus,
    UserFeedback,
)
from intelligent_finder.services.cache import InMemoryMatchCache, MatchCache
from intelligent_finder.services.engines import MatchEngine
from intelligent_finder.services.scoring import ConfidenceScorer, FeedbackLearner

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def sort_results(results: Iterable[MatchResult]) -> list[MatchResult]:
    """Order by confidence descending.

    Ties go to the result backed by more algorithms, then to the lower
    target id, so the order never depends on completion timing.
    """
    return sorted(
        results,
        key=lambda r: (-r.confidence, -len(r.contributing_algorithms), r.target_document_id),
    )


def estimate_time_remaining(processed: int, total: int, elapsed_ms: float) -> float:
    """(elapsed / processed) × (total − processed), in milliseconds."""
    if processed <= 0:
        return 0.0
    return round(elapsed_ms / processed * (total - processed), 3)


class MatchService:
    """
    Service for finding, batching and validating document matches.

    Usage:
        service = MatchService(
            engines=create_default_engines(embedder),
            scorer=ConfidenceScorer(),
            cache=InMemoryMatchCache(),
            documents=document_repository,
            matches=InMemoryMatchRepository(),
        )

        results = await service.find_matches("doc-0001")
        await service.validate_match(results[0].match_id, UserFeedback(
            match_id=results[0].match_id, accepted=True,
        ))
    """

    def __init__(
        self,
        engines: Union[Mapping[Algorithm, MatchEngine], Iterable[MatchEngine]],
        scorer: ConfidenceScorer,
        cache: MatchCache,
        documents: DocumentRepository,
        matches: MatchRepository,
        settings: Optional[MatchingSettings] = None,
        learner: Optional[FeedbackLearner] = None,
    ) -> None:
        """
        Initialize MatchService.

        Args:
            engines: One engine per algorithm (mapping or iterable of engines)
            scorer: Confidence scorer owning the weight state
            cache: Match cache keyed by source document id
            documents: Document store
            matches: Match and feedback store
            settings: Matching settings
            learner: Background feedback learner (created if omitted)
        """
        if isinstance(engines, Mapping):
            self._engines: dict[Algorithm, MatchEngine] = {
                Algorithm(name): engine for name, engine in engines.items()
            }
        else:
            self._engines = {engine.algorithm: engine for engine in engines}

        self._scorer = scorer
        self._cache = cache
        self._documents = documents
        self._matches = matches
        self._settings = settings or matching_settings

        self._scorer.bind_match_repository(matches)
        self._learner = learner or FeedbackLearner(scorer, on_weights_changed=self._clear_cache)

        logger.debug(
            "match_service_initialized",
            engines=sorted(a.value for a in self._engines),
        )

    @property
    def learner(self) -> FeedbackLearner:
        return self._learner

    async def close(self) -> None:
        """Stop background learning."""
        await self._learner.close()

    # =========================================================================
    # find_matches
    # =========================================================================

    async def find_matches(
        self,
        document_id: str,
        options: Optional[MatchOptions] = None,
    ) -> list[MatchResult]:
        """
        Find matches for a document.

        Args:
            document_id: Source document id
            options: Threshold, limit, algorithms, cache usage and filters

        Returns:
            Matches sorted by confidence descending

        Raises:
            NotFoundError: If the source document does not exist
            PersistenceError: If the document or match store fails
        """
        started = time.perf_counter()
        opts = self._resolve_options(options)
        log = logger.bind(document_id=document_id)

        algorithms = self._enabled_algorithms(opts.algorithms)

        # Cache entries always hold the unfiltered set scored by every engine
        cacheable = (
            opts.use_cache
            and not opts.filters.narrows_candidates
            and set(algorithms) == set(self._engines)
        )

        if cacheable:
            cached = await self._read_cache(document_id)
            if cached is not None:
                results = self._select(cached, opts)
                log.debug(
                    "cache_hit",
                    results=len(results),
                    duration_ms=round((time.perf_counter() - started) * 1000, 3),
                )
                return results

        source = await self._load_document(document_id)
        load_filters = (
            opts.filters.model_copy(update={"exclude_documents": []}) if cacheable else opts.filters
        )
        candidates = await self._call_store(
            "load_candidates", self._documents.load_candidates(source, load_filters)
        )

        scored = await self._score_candidates(source, candidates, algorithms)
        ranked = sort_results(
            await self._call_store("save_matches", self._matches.save_matches(scored))
        )

        if cacheable:
            await self._write_cache(document_id, ranked)

        results = self._select(ranked, opts)
        duration_ms = round((time.perf_counter() - started) * 1000, 3)
        await self._record_run(document_id, duration_ms, len(results))

        log.info(
            "find_matches_completed",
            candidates=len(candidates),
            scored=len(ranked),
            results=len(results),
            duration_ms=duration_ms,
        )
        return results

    def _resolve_options(self, options: Optional[MatchOptions]) -> MatchOptions:
        opts = options or MatchOptions()
        return opts.model_copy(
            update={
                "min_confidence": (
                    self._settings.min_confidence
                    if opts.min_confidence is None else opts.min_confidence
                ),
                "max_results": (
                    self._settings.max_results if opts.max_results is None else opts.max_results
                ),
            }
        )

    @staticmethod
    def _select(results: Sequence[MatchResult], opts: MatchOptions) -> list[MatchResult]:
        """Apply exclusions, threshold and limit to a scored list."""
        excluded = set(opts.filters.exclude_documents)
        kept = [
            r for r in results
            if r.target_document_id not in excluded and r.confidence >= opts.min_confidence
        ]
        return sort_results(kept)[: opts.max_results]

    def _enabled_algorithms(self, algorithms: Sequence[Algorithm]) -> list[Algorithm]:
        """Requested algorithms that have an engine, without duplicates."""
        missing = [a.value for a in algorithms if a not in self._engines]
        if missing:
            logger.debug("algorithms_without_engine", algorithms=missing)
        return [a for a in dict.fromkeys(algorithms) if a in self._engines]

    async def _score_candidates(
        self,
        source: Document,
        candidates: Sequence[Document],
        algorithms: Sequence[Algorithm],
    ) -> list[MatchResult]:
        semaphore = asyncio.Semaphore(self._settings.candidate_concurrency)
        return list(
            await asyncio.gather(
                *(
                    self._evaluate(source, candidate, algorithms, semaphore)
                    for candidate in candidates
                )
            )
        )

    async def _evaluate(
        self,
        source: Document,
        candidate: Document,
        algorithms: Sequence[Algorithm],
        semaphore: asyncio.Semaphore,
    ) -> MatchResult:
        """Score one candidate with every enabled algorithm in parallel."""
        async with semaphore:
            scores = await asyncio.gather(
                *(self._run_engine(algorithm, source, candidate) for algorithm in algorithms)
            )

        matches = [
            AlgorithmMatch(algorithm=algorithm.value, score=score)
            for algorithm, score in zip(algorithms, scores)
            if score is not None
        ]
        confidence = await self._scorer.calculate_confidence(matches, document_type=source.type)

        return MatchResult(
            source_document_id=source.id,
            target_document_id=candidate.id,
            confidence=confidence.overall,
            factors=confidence.factors,
            explanation=confidence.explanation,
            tier=confidence.tier,
            document_type=source.type,
            contributing_algorithms=[m.algorithm for m in matches],
        )

    async def _run_engine(
        self,
        algorithm: Algorithm,
        source: Document,
        candidate: Document,
    ) -> Optional[float]:
        """Run one engine; any failure means no contribution."""
        engine = self._engines[algorithm]
        try:
            result = await engine.match_documents(source, candidate)
            score = float(result["score"] if isinstance(result, Mapping) else result.score)
        except AlgorithmUnavailableError as exc:
            logger.debug(
                "algorithm_unavailable",
                algorithm=algorithm.value,
                source_document_id=source.id,
                target_document_id=candidate.id,
                reason=exc.message,
            )
            return None
        except Exception as exc:
            logger.warning(
                "algorithm_failed",
                algorithm=algorithm.value,
                source_document_id=source.id,
                target_document_id=candidate.id,
                error=str(exc),
            )
            return None

        if not 0.0 <= score <= 1.0:
            logger.warning(
                "algorithm_score_out_of_range",
                algorithm=algorithm.value,
                target_document_id=candidate.id,
                score=score,
            )
            return None
        return score

    # =========================================================================
    # batch_match
    # =========================================================================

    async def batch_match(
        self,
        document_ids: Sequence[str],
        options: Optional[BatchMatchOptions] = None,
    ) -> BatchMatchResult:
        """
        Run find_matches for many documents.

        Documents are processed in groups of ``batch_size``; progress is
        reported after each group. At most ``concurrency`` find_matches
        calls are in flight at any time across the whole job. A failing
        document is logged and listed in ``failed_documents``.

        Args:
            document_ids: Source documents, processed in order
            options: Match options plus batch_size, concurrency, on_progress

        Returns:
            BatchMatchResult with all matches and their average confidence
        """
        options = options or BatchMatchOptions()
        job_id = f"job-{uuid4().hex}"
        batch_size = options.batch_size or self._settings.batch_size
        concurrency = options.concurrency or self._settings.concurrency
        match_options = options.match_options()
        total = len(document_ids)

        log = logger.bind(job_id=job_id, total=total)
        log.info("batch_started", batch_size=batch_size, concurrency=concurrency)

        semaphore = asyncio.Semaphore(concurrency)
        started = time.perf_counter()
        all_matches: list[MatchResult] = []
        failed: list[str] = []
        processed = 0

        async def run_one(document_id: str) -> list[MatchResult]:
            async with semaphore:
                return await self.find_matches(document_id, match_options)

        for offset in range(0, total, batch_size):
            group = list(document_ids[offset: offset + batch_size])
            outcomes = await asyncio.gather(
                *(run_one(document_id) for document_id in group),
                return_exceptions=True,
            )

            for document_id, outcome in zip(group, outcomes):
                if isinstance(outcome, Exception):
                    failed.append(document_id)
                    log.warning(
                        "batch_document_failed",
                        document_id=document_id,
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    all_matches.extend(outcome)

            processed += len(group)
            elapsed_ms = (time.perf_counter() - started) * 1000
            progress = BatchProgress(
                job_id=job_id,
                processed=processed,
                total=total,
                current_document=group[-1],
                estimated_time_remaining=estimate_time_remaining(processed, total, elapsed_ms),
            )
            log.info(
                "batch_progress",
                processed=processed,
                estimated_time_remaining=progress.estimated_time_remaining,
            )
            await self._notify_progress(options.on_progress, progress)

        processing_time = round((time.perf_counter() - started) * 1000, 3)
        average_confidence = (
            sum(m.confidence for m in all_matches) / len(all_matches) if all_matches else 0.0
        )
        status = self._batch_status(total, len(failed))

        log.info(
            "batch_completed",
            status=status.value,
            total_matches=len(all_matches),
            failed=len(failed),
            processing_time=processing_time,
        )
        return BatchMatchResult(
            job_id=job_id,
            status=status,
            total_matches=len(all_matches),
            average_confidence=average_confidence,
            processing_time=processing_time,
            matches=all_matches,
            failed_documents=failed,
        )

    def _batch_status(self, total: int, failures: int) -> BatchJobStatus:
        if not self._settings.strict_batch_status or failures == 0:
            return BatchJobStatus.COMPLETED
        if failures >= total:
            return BatchJobStatus.FAILED
        return BatchJobStatus.PARTIALLY_FAILED

    @staticmethod
    async def _notify_progress(
        callback: Optional[Callable[[BatchProgress], Any]],
        progress: BatchProgress,
    ) -> None:
        if callback is None:
            return
        try:
            outcome = callback(progress)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.warning("progress_callback_failed", job_id=progress.job_id, error=str(exc))

    # =========================================================================
    # Feedback and weights
    # =========================================================================

    async def validate_match(self, match_id: str, feedback: UserFeedback) -> None:
        """
        Record accept/reject feedback on a match.

        Moves the match out of pending, then stores the feedback, invalidates
        the source document's cache entry and queues the feedback for
        learning. The status change is the transition guard: feedback is only
        stored once it succeeds. Learning runs in the background; its failures
        are never raised here.

        Raises:
            ValueError: If ``feedback.match_id`` differs from ``match_id``
            NotFoundError: If the match does not exist
            InvalidStatusTransitionError: If the match was already decided
            PersistenceError: If the match store fails
        """
        if feedback.match_id != match_id:
            raise ValueError(
                f"Feedback refers to {feedback.match_id}, expected {match_id}"
            )

        status = MatchStatus.ACCEPTED if feedback.accepted else MatchStatus.REJECTED
        match = await self._call_store(
            "update_match_status", self._matches.update_match_status(match_id, status)
        )
        await self._call_store("store_feedback", self._matches.store_feedback(feedback))
        await self._invalidate_cache(match.source_document_id)

        self._learner.submit(feedback)
        logger.info(
            "match_validated",
            match_id=match_id,
            source_document_id=match.source_document_id,
            status=status.value,
        )

    async def update_weights(self, weights: Union[ConfidenceWeights, Mapping[str, Any]]) -> None:
        """
        Replace the scorer weights and clear the whole cache.

        Raises:
            InvalidWeightsError: If the weights are rejected (cache untouched)
        """
        await self._scorer.update_weights(weights)
        await self._clear_cache()

    async def get_weights(self, document_type: Optional[str] = None) -> ConfidenceWeights:
        return await self._scorer.get_weights(document_type)

    async def get_match(self, match_id: str) -> Optional[MatchResult]:
        return await self._call_store("get_match", self._matches.get_match(match_id))

    async def get_statistics(self, time_range: Optional[TimeRange] = None) -> MatchStatistics:
        """Aggregate stored matches (and recorded run times) within ``time_range``."""
        matches = await self._call_store("list_matches", self._matches.list_matches(time_range))
        runs = await self._call_store("list_runs", self._matches.list_runs(time_range))

        decided = [m for m in matches if m.status != MatchStatus.PENDING]
        accepted = sum(1 for m in decided if m.status == MatchStatus.ACCEPTED)

        by_algorithm: dict[str, AlgorithmStats] = {}
        for algorithm in Algorithm:
            scores = [
                getattr(m.factors, algorithm.value)
                for m in matches
                if algorithm.value in m.contributing_algorithms
            ]
            by_algorithm[algorithm.value] = AlgorithmStats(
                count=len(scores),
                avg_score=sum(scores) / len(scores) if scores else 0.0,
            )

        levels = ConfidenceLevelCounts()
        for match in matches:
            tier = self._scorer.tier_for(match.confidence).value
            setattr(levels, tier, getattr(levels, tier) + 1)

        return MatchStatistics(
            total_matches=len(matches),
            acceptance_rate=accepted / len(decided) if decided else 0.0,
            average_confidence=(
                sum(m.confidence for m in matches) / len(matches) if matches else 0.0
            ),
            average_processing_time=(
                sum(r.duration_ms for r in runs) / len(runs) if runs else 0.0
            ),
            by_algorithm=by_algorithm,
            by_confidence_level=levels,
        )

    # =========================================================================
    # Store and cache access
    # =========================================================================

    async def _load_document(self, document_id: str) -> Document:
        document = await self._call_store(
            "load_document", self._documents.load_document(document_id)
        )
        if document is None:
            raise NotFoundError(
                f"Document not found: {document_id}",
                details={"document_id": document_id},
            )
        return document

    @staticmethod
    async def _call_store(operation: str, call: Awaitable[T]) -> T:
        """Await a store call, surfacing unexpected failures as PersistenceError."""
        try:
            return await call
        except FinderError:
            raise
        except Exception as exc:
            logger.error("store_operation_failed", operation=operation, error=str(exc))
            raise PersistenceError(
                f"Store operation {operation} failed: {exc}",
                details={"operation": operation},
            ) from exc

    async def _record_run(self, document_id: str, duration_ms: float, result_count: int) -> None:
        try:
            await self._matches.record_run(document_id, duration_ms, result_count)
        except Exception as exc:
            logger.warning("run_record_failed", document_id=document_id, error=str(exc))

    async def _read_cache(self, document_id: str) -> Optional[list[MatchResult]]:
        try:
            return await self._cache.get_cached_match(document_id)
        except Exception as exc:
            logger.warning("cache_read_failed", document_id=document_id, error=str(exc))
            return None

    async def _write_cache(self, document_id: str, results: list[MatchResult]) -> None:
        try:
            await self._cache.set_cached_match(document_id, results)
        except Exception as exc:
            logger.warning("cache_write_failed", document_id=document_id, error=str(exc))

    async def _invalidate_cache(self, document_id: str) -> None:
        try:
            await self._cache.invalidate_document(document_id)
        except Exception as exc:
            logger.warning("cache_invalidate_failed", document_id=document_id, error=str(exc))

    async def _clear_cache(self) -> None:
        try:
            await self._cache.clear_all()
        except Exception as exc:
            logger.warning("cache_clear_failed", error=str(exc))


def create_match_service(
    documents: DocumentRepository,
    engines: Union[Mapping[Algorithm, MatchEngine], Iterable[MatchEngine]],
    matches: Optional[MatchRepository] = None,
    cache: Optional[MatchCache] = None,
    scorer: Optional[ConfidenceScorer] = None,
    settings: Optional[MatchingSettings] = None,
) -> MatchService:
    """Factory function wiring a MatchService with in-memory defaults.

    Args:
        documents: Document store
        engines: Engines per algorithm (see ``create_default_engines``)
        matches: Match store (in-memory if omitted)
        cache: Match cache (in-memory if omitted)
        scorer: Confidence scorer (configured default weights if omitted)
        settings: Matching settings
    """
    return MatchService(
        engines=engines,
        scorer=scorer or ConfidenceScorer(),
        cache=cache or InMemoryMatchCache(),
        documents=documents,
        matches=matches or InMemoryMatchRepository(),
        settings=settings,
    )
