"""Progress snapshot store.

Owns the ``progress_snapshots`` table. The two mutating operations are the
only code allowed to change a snapshot, and both go through the same
optimistic-concurrency loop:

1. read the current row (or start from an empty snapshot)
2. apply the change in memory, bumping ``version``
3. write with ``INSERT ... IF NOT EXISTS`` / ``UPDATE ... IF version = ?``
4. if the condition did not apply, someone else won the race: re-read and retry

Concurrent completions of different lessons for the same pair therefore all
end up in the completed set.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.sync.exceptions import StorageUnavailableError, storage_errors

from .models import ProgressSnapshot, QuizResult


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

DEFAULT_MAX_WRITE_ATTEMPTS = 8


class ProgressSnapshotStore:
    """Read and conditionally update per-course progress snapshots."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_write_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS,
        retry_backoff_seconds: float = 0.01,
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.max_write_attempts = max_write_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_snapshot = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.progress_snapshots
            WHERE student_id = ? AND course_id = ?
        """)

        self._insert_snapshot = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_snapshots
            (student_id, course_id, completed_lesson_ids, time_spent_minutes,
             quiz_results, last_activity_at, created_at, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_snapshot = self.session.prepare(f"""
            UPDATE {self.keyspace}.progress_snapshots
            SET completed_lesson_ids = ?, time_spent_minutes = ?, quiz_results = ?,
                last_activity_at = ?, updated_at = ?, version = ?
            WHERE student_id = ? AND course_id = ?
            IF version = ?
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_snapshot(
        self, student_id: UUID, course_id: UUID
    ) -> ProgressSnapshot | None:
        """Get the snapshot for a pair, or None. Never creates one."""
        with storage_errors(
            "get_snapshot", student_id=student_id, course_id=course_id
        ):
            result = await self.session.aexecute(
                self._get_snapshot, [student_id, course_id]
            )
        row = result.one()
        return ProgressSnapshot.from_row(row) if row else None

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def record_lesson_completion(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        time_spent_minutes: int,
        completed_at: datetime | None = None,
    ) -> ProgressSnapshot:
        """Mark a lesson completed (idempotent on lesson_id).

        Time spent accumulates on every call; the completed count does not.

        Raises:
            StorageUnavailableError: Store unreachable or write contention
                not resolved within ``max_write_attempts``
        """
        completed_at = completed_at or datetime.now(UTC)
        snapshot = await self._apply(
            student_id,
            course_id,
            lambda current: current.with_lesson_completion(
                lesson_id, time_spent_minutes, completed_at
            ),
            operation="record_lesson_completion",
        )
        logger.info(
            "lesson_completion_recorded",
            student_id=str(student_id),
            course_id=str(course_id),
            lesson_id=str(lesson_id),
            lessons_completed=snapshot.lessons_completed,
            version=snapshot.version,
        )
        return snapshot

    async def record_quiz_result(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        score: float,
        max_score: float,
        time_spent_minutes: int,
        passed: bool,
        attempted_at: datetime | None = None,
    ) -> ProgressSnapshot:
        """Store a quiz attempt, replacing the older attempt for the lesson.

        Raises:
            StorageUnavailableError: Same conditions as record_lesson_completion
        """
        result = QuizResult(
            lesson_id=lesson_id,
            score=score,
            max_score=max_score,
            passed=passed,
            attempted_at=attempted_at or datetime.now(UTC),
            time_spent_minutes=time_spent_minutes,
        )
        snapshot = await self._apply(
            student_id,
            course_id,
            lambda current: current.with_quiz_result(result),
            operation="record_quiz_result",
        )
        logger.info(
            "quiz_result_recorded",
            student_id=str(student_id),
            course_id=str(course_id),
            lesson_id=str(lesson_id),
            passed=passed,
            attempts=snapshot.quiz_results[lesson_id].attempts,
            version=snapshot.version,
        )
        return snapshot

    # ==========================================================================
    # Conditional write loop
    # ==========================================================================

    async def _apply(
        self,
        student_id: UUID,
        course_id: UUID,
        change: Callable[[ProgressSnapshot], ProgressSnapshot],
        operation: str,
    ) -> ProgressSnapshot:
        for attempt in range(1, self.max_write_attempts + 1):
            current = await self.get_snapshot(student_id, course_id)

            if current is None:
                updated = change(ProgressSnapshot(student_id, course_id))
                applied = await self._insert_if_absent(updated)
            else:
                updated = change(current)
                applied = await self._update_if_version(updated, current.version)

            if applied:
                return updated

            logger.debug(
                "snapshot_write_conflict",
                operation=operation,
                student_id=str(student_id),
                course_id=str(course_id),
                attempt=attempt,
            )
            if self.retry_backoff_seconds:
                await asyncio.sleep(self.retry_backoff_seconds * attempt)

        logger.warning(
            "snapshot_write_contention_exhausted",
            operation=operation,
            student_id=str(student_id),
            course_id=str(course_id),
            attempts=self.max_write_attempts,
        )
        msg = f"{operation} did not converge after {self.max_write_attempts} attempts"
        raise StorageUnavailableError(msg)

    async def _insert_if_absent(self, snapshot: ProgressSnapshot) -> bool:
        with storage_errors(
            "insert_snapshot",
            student_id=snapshot.student_id,
            course_id=snapshot.course_id,
        ):
            result = await self.session.aexecute(
                self._insert_snapshot,
                [
                    snapshot.student_id,
                    snapshot.course_id,
                    set(snapshot.completed_lesson_ids),
                    snapshot.time_spent_minutes,
                    snapshot.quiz_results_column(),
                    snapshot.last_activity_at,
                    snapshot.created_at,
                    snapshot.updated_at,
                    snapshot.version,
                ],
            )
        return bool(result.was_applied)

    async def _update_if_version(
        self, snapshot: ProgressSnapshot, expected_version: int
    ) -> bool:
        with storage_errors(
            "update_snapshot",
            student_id=snapshot.student_id,
            course_id=snapshot.course_id,
        ):
            result = await self.session.aexecute(
                self._update_snapshot,
                [
                    set(snapshot.completed_lesson_ids),
                    snapshot.time_spent_minutes,
                    snapshot.quiz_results_column(),
                    snapshot.last_activity_at,
                    snapshot.updated_at,
                    snapshot.version,
                    snapshot.student_id,
                    snapshot.course_id,
                    expected_version,
                ],
            )
        return bool(result.was_applied)
