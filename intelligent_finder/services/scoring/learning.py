"""Background feedback learning.

Feedback is queued by the match service and applied to the scorer by a
single worker task, off the request path. Failures are logged and kept in
a bounded failure log; they never reach the caller of validate_match.
"""
import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog

from intelligent_finder.models import UserFeedback
from intelligent_finder.services.scoring.scorer import ConfidenceScorer

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LearningFailure:
    """A feedback record the scorer could not learn from."""

    match_id: str
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FeedbackLearner:
    """
    Queue + worker that feeds UserFeedback into ConfidenceScorer.

    Usage:
        learner = FeedbackLearner(scorer, on_weights_changed=cache.clear_all)
        learner.submit(feedback)   # returns immediately
        await learner.join()       # wait until the queue is drained
        await learner.close()
    """

    def __init__(
        self,
        scorer: ConfidenceScorer,
        on_weights_changed: Optional[Callable[[], Awaitable[None]]] = None,
        max_failures: int = 100,
    ) -> None:
        self._scorer = scorer
        self._on_weights_changed = on_weights_changed
        self._queue: Optional[asyncio.Queue[UserFeedback]] = None
        self._worker: Optional[asyncio.Task] = None
        self.failures: deque[LearningFailure] = deque(maxlen=max_failures)
        self.processed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    def submit(self, feedback: UserFeedback) -> None:
        """Queue feedback for learning. Must be called from a running loop.

        The queue belongs to the worker's event loop: when the worker has
        stopped or runs on another loop, both are replaced.
        """
        loop = asyncio.get_running_loop()
        if self._worker is None or self._worker.done() or self._worker.get_loop() is not loop:
            if self._queue is not None and self._queue.qsize():
                logger.warning("feedback_learner_restarted", dropped=self._queue.qsize())
            self._queue = asyncio.Queue()
            self._worker = loop.create_task(self._run(self._queue), name="feedback-learner")
            self._worker.add_done_callback(self._on_worker_done)
        self._queue.put_nowait(feedback)

    async def join(self) -> None:
        """Wait until every queued feedback record has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Stop the worker. Queued records that were not processed are dropped."""
        worker, self._worker = self._worker, None
        if worker is None or worker.done():
            return
        if worker.get_loop() is not asyncio.get_running_loop():
            # Its loop is gone or foreign; cancelling would touch that loop
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _on_worker_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("feedback_learner_crashed", error=str(exc), exc_info=exc)

    async def _run(self, queue: asyncio.Queue) -> None:
        while True:
            feedback = await queue.get()
            try:
                changed = await self._scorer.learn_from_feedback(feedback)
                if changed and self._on_weights_changed is not None:
                    await self._on_weights_changed()
                self.processed += 1
            except Exception as exc:
                logger.error(
                    "feedback_learning_failed",
                    match_id=feedback.match_id,
                    error=str(exc),
                    exc_info=True,
                )
                self.failures.append(LearningFailure(match_id=feedback.match_id, error=str(exc)))
            finally:
                queue.task_done()
