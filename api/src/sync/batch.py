"""Batch coordinator: bounded resync of a page of students.

- At most ``MAX_BATCH_SIZE`` ids per call; callers page larger sets.
- A fixed pool of workers drains a queue of ids, so the store never sees
  more than ``concurrency`` students being recomputed at once.
- Fail-open: a failing student is recorded in the report and the remaining
  ids are still processed.

Permission checks belong to the HTTP layer; the coordinator trusts its caller.
"""

import asyncio
import time
from datetime import UTC, datetime
from uuid import UUID

import structlog

from .exceptions import BatchLimitExceededError, InvalidInputError, SyncError
from .orchestrator import SyncOrchestrator
from .schemas import BatchSyncReport, StudentSyncResult


logger = structlog.get_logger(__name__)

MAX_BATCH_SIZE = 100
DEFAULT_CONCURRENCY = 5


class BatchCoordinator:
    """Drives SyncOrchestrator.resync_student over a list of students."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        self.orchestrator = orchestrator
        self.concurrency = max(1, concurrency)
        self.max_batch_size = min(max_batch_size, MAX_BATCH_SIZE)

    async def batch_sync_students(self, student_ids: list[UUID]) -> BatchSyncReport:
        """Resync every student and report per-student outcomes.

        Duplicate ids are processed once.

        Raises:
            InvalidInputError: Empty list
            BatchLimitExceededError: More than ``max_batch_size`` ids
        """
        if not student_ids:
            msg = "student_ids must not be empty"
            raise InvalidInputError(msg)
        if len(student_ids) > self.max_batch_size:
            raise BatchLimitExceededError(len(student_ids), self.max_batch_size)

        unique_ids = list(dict.fromkeys(student_ids))
        started_at = datetime.now(UTC)

        queue: asyncio.Queue[UUID] = asyncio.Queue()
        for student_id in unique_ids:
            queue.put_nowait(student_id)

        results: dict[UUID, StudentSyncResult] = {}
        pool_size = min(self.concurrency, len(unique_ids))
        await asyncio.gather(*(self._worker(queue, results) for _ in range(pool_size)))

        ordered = [results[student_id] for student_id in unique_ids]
        succeeded = sum(1 for r in ordered if r.success)
        report = BatchSyncReport(
            requested=len(student_ids),
            unique=len(unique_ids),
            succeeded=succeeded,
            failed=len(ordered) - succeeded,
            results=ordered,
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )

        logger.info(
            "batch_sync_completed",
            requested=report.requested,
            unique=report.unique,
            succeeded=report.succeeded,
            failed=report.failed,
            workers=pool_size,
        )
        return report

    async def _worker(
        self,
        queue: "asyncio.Queue[UUID]",
        results: dict[UUID, StudentSyncResult],
    ) -> None:
        while True:
            try:
                student_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[student_id] = await self._sync_one(student_id)

    async def _sync_one(self, student_id: UUID) -> StudentSyncResult:
        start = time.perf_counter()
        try:
            courses = await self.orchestrator.resync_student(student_id)
        except Exception as e:
            code = e.code if isinstance(e, SyncError) else "internal_error"
            logger.exception(
                "batch_student_sync_failed",
                student_id=str(student_id),
                error_code=code,
            )
            return StudentSyncResult(
                student_id=student_id,
                success=False,
                error_code=code,
                error_message=str(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )

        return StudentSyncResult(
            student_id=student_id,
            success=True,
            courses_synced=courses,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
