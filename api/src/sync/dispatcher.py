"""Fire-and-forget sync dispatcher with a fixed pool of background workers.

Key features:
- Non-blocking dispatch (asyncio.Queue.put_nowait())
- Graceful degradation (drop + log when the queue is full)
- N workers route events to the SyncOrchestrator
- A failing event is logged and counted; it never stops a worker

The queue lives in process memory: events still queued when the process dies
are lost. Aggregates recover on the next sync or dashboard read.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from src.core.context import RequestContext

from .models import EnrollmentChangedEvent, LessonCompletedEvent, QuizSubmittedEvent
from .schemas import DispatcherStats, QuizSubmission, SyncOutcome


if TYPE_CHECKING:
    from .models import SyncEvent
    from .orchestrator import SyncOrchestrator


logger = structlog.get_logger(__name__)


class SyncDispatcher:
    """Background queue feeding learning actions to the orchestrator."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        queue_size: int = 1000,
        workers: int = 4,
        shutdown_timeout: float = 5.0,
    ) -> None:
        """Initialize dispatcher.

        Args:
            orchestrator: Target of every event
            queue_size: Maximum pending events (events dropped when full)
            workers: Number of concurrent worker tasks
            shutdown_timeout: Seconds to wait for the queue to drain on stop
        """
        self.orchestrator = orchestrator
        self.queue_size = queue_size
        self.workers = workers
        self.shutdown_timeout = shutdown_timeout

        self._queue: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=queue_size)
        self._running = False
        self._worker_tasks: list[asyncio.Task] = []
        self._start_time: float = 0.0

        # Counters for monitoring
        self._events_dispatched = 0
        self._events_dropped = 0
        self._events_processed = 0
        self._events_failed = 0

    # ==========================================================================
    # Fire-and-forget dispatch
    # ==========================================================================

    def dispatch(self, event: SyncEvent) -> bool:
        """Queue an event without waiting.

        Returns:
            True if queued, False if dropped (queue full)
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._events_dropped += 1
            logger.warning(
                "sync_queue_full",
                action=event.action.value,
                student_id=str(event.student_id),
                queue_size=self.queue_size,
                dropped_total=self._events_dropped,
            )
            return False

        self._events_dispatched += 1
        return True

    # ==========================================================================
    # Background workers
    # ==========================================================================

    async def start(self) -> None:
        """Start the worker pool."""
        if self._running:
            logger.warning("sync_dispatcher_already_running")
            return

        self._running = True
        self._start_time = time.monotonic()
        self._worker_tasks = [
            asyncio.create_task(self._worker_loop(), name=f"sync_worker_{n}")
            for n in range(self.workers)
        ]
        logger.info(
            "sync_dispatcher_started",
            workers=self.workers,
            queue_size=self.queue_size,
        )

    async def stop(self) -> None:
        """Drain the queue (bounded by shutdown_timeout) and stop workers."""
        if not self._running:
            return

        try:
            await asyncio.wait_for(self.drain(), timeout=self.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "sync_dispatcher_drain_timeout",
                pending=self._queue.qsize(),
                timeout=self.shutdown_timeout,
            )

        self._running = False
        for task in self._worker_tasks:
            task.cancel()
        await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks = []

        logger.info(
            "sync_dispatcher_stopped",
            events_dispatched=self._events_dispatched,
            events_processed=self._events_processed,
            events_failed=self._events_failed,
            events_dropped=self._events_dropped,
        )

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _worker_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                outcome = await self._process(event)
                if outcome.success:
                    self._events_processed += 1
                else:
                    self._events_failed += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self._events_failed += 1
                logger.exception(
                    "sync_worker_error",
                    action=event.action.value,
                    student_id=str(event.student_id),
                )
            finally:
                self._queue.task_done()

    async def _process(self, event: SyncEvent) -> SyncOutcome:
        """Route an event to the matching orchestrator operation."""
        with RequestContext(request_id=event.request_id, user_id=event.student_id):
            if isinstance(event, LessonCompletedEvent):
                return await self.orchestrator.sync_lesson_completion(
                    event.student_id,
                    event.course_id,
                    event.module_id,
                    event.lesson_id,
                    event.time_spent_minutes,
                    occurred_at=event.occurred_at,
                )
            if isinstance(event, QuizSubmittedEvent):
                return await self.orchestrator.sync_quiz_completion(
                    event.student_id,
                    event.course_id,
                    event.lesson_id,
                    QuizSubmission(
                        score=event.score,
                        max_score=event.max_score,
                        time_spent_minutes=event.time_spent_minutes,
                        passed=event.passed,
                    ),
                    occurred_at=event.occurred_at,
                )
            if isinstance(event, EnrollmentChangedEvent):
                return await self.orchestrator.sync_enrollment_stats(event.student_id)

        msg = f"Unsupported sync event: {type(event).__name__}"
        raise TypeError(msg)

    # ==========================================================================
    # Status/Monitoring
    # ==========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_length(self) -> int:
        return self._queue.qsize()

    @property
    def queue_utilization(self) -> float:
        """Queue utilization percentage."""
        return (self._queue.qsize() / self.queue_size) * 100

    @property
    def uptime_seconds(self) -> float:
        if not self._running or self._start_time == 0:
            return 0.0
        return time.monotonic() - self._start_time

    def get_stats(self) -> DispatcherStats:
        """Get dispatcher statistics for monitoring."""
        return DispatcherStats(
            running=self._running,
            workers=self.workers,
            queue_size=self.queue_size,
            queue_length=self._queue.qsize(),
            queue_utilization=self.queue_utilization,
            events_dispatched=self._events_dispatched,
            events_dropped=self._events_dropped,
            events_processed=self._events_processed,
            events_failed=self._events_failed,
            uptime_seconds=self.uptime_seconds,
        )
