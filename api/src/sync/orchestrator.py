"""Sync orchestrator: fan-out from a learning action to derived state.

Given a completion event it updates the progress snapshot (the only record
of truth) and then refreshes the dependent aggregates: dashboard summary and
enrollment statistics. Aggregates are always recomputed from snapshots and
enrollments, never patched incrementally, so a failed refresh heals itself
on the next sync or read.

Error policy:
- InvalidInputError is raised before any store access.
- StorageUnavailableError during a write is logged with the student/course
  ids and reported as a failed SyncOutcome. These writes run after the HTTP
  response was sent, so there is nobody to raise to.
- StorageUnavailableError during a read (dashboard, statistics, deviation)
  propagates so the caller can show a retry state.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

import structlog
from redis.exceptions import RedisError

from src.analytics import ON_TRACK_THRESHOLD_PCT, DeviationLabel, DeviationResult
from src.analytics.deviation import actual_progress, compute_deviation
from src.enrollments.models import Enrollment, EnrollmentStatus
from src.enrollments.service import EnrollmentError, EnrollmentService
from src.progress.models import ProgressSnapshot
from src.progress.service import ProgressSnapshotStore

from .exceptions import (
    InvalidInputError,
    NotFoundError,
    StorageUnavailableError,
    SyncError,
)
from .models import LearningAction
from .publisher import DashboardPublisher
from .schemas import (
    CourseDashboardEntry,
    DashboardSummary,
    DeviationResponse,
    EnrollmentStatistics,
    QuizSubmission,
    SyncOutcome,
)


logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _require(**ids: UUID | None) -> None:
    missing = [name for name, value in ids.items() if value is None]
    if missing:
        msg = f"Missing required identifiers: {', '.join(missing)}"
        raise InvalidInputError(msg)


class SyncOrchestrator:
    """Coordinates snapshot updates and aggregate refreshes."""

    def __init__(
        self,
        store: ProgressSnapshotStore,
        enrollments: EnrollmentService,
        publisher: DashboardPublisher | None = None,
        deviation_threshold: int = ON_TRACK_THRESHOLD_PCT,
        clock: Callable[[], datetime] = _utc_now,
        max_concurrent_reads: int = 8,
    ):
        self.store = store
        self.enrollments = enrollments
        self.publisher = publisher
        self.deviation_threshold = deviation_threshold
        self.clock = clock
        self.max_concurrent_reads = max(1, max_concurrent_reads)

    # ==========================================================================
    # Write path (background)
    # ==========================================================================

    async def sync_lesson_completion(
        self,
        student_id: UUID,
        course_id: UUID,
        module_id: UUID | None,
        lesson_id: UUID,
        time_spent_minutes: int,
        occurred_at: datetime | None = None,
    ) -> SyncOutcome:
        """Record a lesson completion and refresh the dashboard.

        ``module_id`` is optional context and only used for logging.
        ``occurred_at`` is when the student acted; defaults to now. Completing
        the last lesson of a course marks the enrollment completed.

        Raises:
            InvalidInputError: Missing identifiers or negative time spent
        """
        _require(student_id=student_id, course_id=course_id, lesson_id=lesson_id)
        if time_spent_minutes < 0:
            msg = "time_spent_minutes must not be negative"
            raise InvalidInputError(msg)

        action = LearningAction.LESSON_COMPLETED
        try:
            snapshot = await self.store.record_lesson_completion(
                student_id,
                course_id,
                lesson_id,
                time_spent_minutes,
                completed_at=occurred_at or self.clock(),
            )
        except StorageUnavailableError as e:
            return self._write_failed(action, student_id, course_id, e)

        course_completed = await self._complete_enrollment(snapshot)
        refreshed = await self._refresh_dashboard(student_id)
        logger.info(
            "lesson_completion_synced",
            student_id=str(student_id),
            course_id=str(course_id),
            module_id=str(module_id) if module_id else None,
            lesson_id=str(lesson_id),
            lessons_completed=snapshot.lessons_completed,
            course_completed=course_completed,
            dashboard_refreshed=refreshed,
        )
        return SyncOutcome(
            success=True,
            action=action.value,
            student_id=student_id,
            course_id=course_id,
            lessons_completed=snapshot.lessons_completed,
            course_completed=course_completed,
            dashboard_refreshed=refreshed,
        )

    async def sync_quiz_completion(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        result: QuizSubmission,
        occurred_at: datetime | None = None,
    ) -> SyncOutcome:
        """Record a quiz attempt and refresh the dashboard.

        ``occurred_at`` is when the quiz was submitted; defaults to now.

        Raises:
            InvalidInputError: Missing identifiers or score above max_score
        """
        _require(student_id=student_id, course_id=course_id, lesson_id=lesson_id)
        if result.score > result.max_score:
            msg = "score must not exceed max_score"
            raise InvalidInputError(msg)

        action = LearningAction.QUIZ_SUBMITTED
        try:
            snapshot = await self.store.record_quiz_result(
                student_id,
                course_id,
                lesson_id,
                score=result.score,
                max_score=result.max_score,
                time_spent_minutes=result.time_spent_minutes,
                passed=result.passed,
                attempted_at=occurred_at or self.clock(),
            )
        except StorageUnavailableError as e:
            return self._write_failed(action, student_id, course_id, e)

        refreshed = await self._refresh_dashboard(student_id)
        logger.info(
            "quiz_completion_synced",
            student_id=str(student_id),
            course_id=str(course_id),
            lesson_id=str(lesson_id),
            passed=result.passed,
            dashboard_refreshed=refreshed,
        )
        return SyncOutcome(
            success=True,
            action=action.value,
            student_id=student_id,
            course_id=course_id,
            lessons_completed=snapshot.lessons_completed,
            dashboard_refreshed=refreshed,
        )

    async def sync_enrollment_stats(self, student_id: UUID) -> SyncOutcome:
        """Recompute enrollment statistics after an enrollment change.

        Raises:
            InvalidInputError: Missing student id
        """
        _require(student_id=student_id)
        action = LearningAction.ENROLLMENT_CHANGED

        try:
            statistics = await self.compute_enrollment_statistics(student_id)
        except StorageUnavailableError as e:
            return self._write_failed(action, student_id, None, e)

        await self._publish_statistics(statistics)
        refreshed = await self._refresh_dashboard(student_id)
        logger.info(
            "enrollment_stats_synced",
            student_id=str(student_id),
            total_enrollments=statistics.total_enrollments,
            active_enrollments=statistics.active_enrollments,
        )
        return SyncOutcome(
            success=True,
            action=action.value,
            student_id=student_id,
            dashboard_refreshed=refreshed,
            statistics=statistics,
        )

    # ==========================================================================
    # Read path
    # ==========================================================================

    async def get_real_time_dashboard_data(self, student_id: UUID) -> DashboardSummary:
        """Assemble the dashboard of a student from current snapshots.

        A course without a snapshot counts as zero progress.

        Raises:
            InvalidInputError: Missing student id
            StorageUnavailableError: Store unreachable
        """
        _require(student_id=student_id)
        active = await self.enrollments.list_active_enrollments(student_id)
        snapshots = await self._load_snapshots(student_id, active)
        return self._build_dashboard(student_id, active, snapshots, self.clock())

    async def compute_enrollment_statistics(
        self, student_id: UUID
    ) -> EnrollmentStatistics:
        """Aggregate all enrollments (any status) of a student.

        Raises:
            StorageUnavailableError: Store unreachable
        """
        enrollments = await self.enrollments.list_enrollments(student_id)
        snapshots = await self._load_snapshots(student_id, enrollments)
        return self._build_statistics(
            student_id, enrollments, snapshots, self.clock()
        )

    async def get_course_deviation(
        self, student_id: UUID, course_id: UUID
    ) -> DeviationResult:
        """Deviation of a single enrollment.

        Raises:
            NotFoundError: Student not enrolled in the course
            StorageUnavailableError: Store unreachable
        """
        _require(student_id=student_id, course_id=course_id)
        enrollment = await self.enrollments.get_enrollment(student_id, course_id)
        if enrollment is None:
            msg = "Enrollment not found"
            raise NotFoundError(msg)

        snapshot = await self.store.get_snapshot(student_id, course_id)
        return compute_deviation(
            enrollment,
            snapshot.lessons_completed if snapshot else 0,
            self.clock(),
            self.deviation_threshold,
        )

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    async def resync_student(self, student_id: UUID) -> int:
        """Recompute and republish every aggregate of a student.

        Enrollments and snapshots are read once and both aggregates are
        built from that single pass. Used by the batch coordinator, which
        records failures per student.

        Returns:
            Number of enrollments covered

        Raises:
            StorageUnavailableError: Store unreachable
            redis.RedisError: Publication failed
        """
        _require(student_id=student_id)
        now = self.clock()
        enrollments = await self.enrollments.list_enrollments(student_id)
        snapshots = await self._load_snapshots(student_id, enrollments)

        statistics = self._build_statistics(student_id, enrollments, snapshots, now)
        active = [
            (enrollment, snapshot)
            for enrollment, snapshot in zip(enrollments, snapshots, strict=True)
            if enrollment.is_active
        ]
        summary = self._build_dashboard(
            student_id,
            [enrollment for enrollment, _ in active],
            [snapshot for _, snapshot in active],
            now,
        )
        if self.publisher is not None:
            await self.publisher.publish_statistics(statistics)
            await self.publisher.publish_dashboard(summary)
        return statistics.total_enrollments

    # ==========================================================================
    # Aggregate builders
    # ==========================================================================

    def _build_dashboard(
        self,
        student_id: UUID,
        active: list[Enrollment],
        snapshots: list[ProgressSnapshot | None],
        now: datetime,
    ) -> DashboardSummary:
        entries = [
            self._dashboard_entry(enrollment, snapshot, now)
            for enrollment, snapshot in zip(active, snapshots, strict=True)
        ]
        entries.sort(key=lambda e: e.last_activity_at or _EPOCH, reverse=True)

        labels = [entry.deviation.label for entry in entries]
        return DashboardSummary(
            student_id=student_id,
            courses=entries,
            active_courses=len(entries),
            courses_ahead=labels.count(DeviationLabel.AHEAD),
            courses_on_track=labels.count(DeviationLabel.ON_TRACK),
            courses_behind=labels.count(DeviationLabel.BEHIND),
            average_progress_pct=(
                round(sum(e.progress_pct for e in entries) / len(entries), 2)
                if entries
                else 0.0
            ),
            total_time_spent_minutes=sum(e.time_spent_minutes for e in entries),
            last_activity_at=entries[0].last_activity_at if entries else None,
            generated_at=now,
        )

    def _build_statistics(
        self,
        student_id: UUID,
        enrollments: list[Enrollment],
        snapshots: list[ProgressSnapshot | None],
        now: datetime,
    ) -> EnrollmentStatistics:
        statuses = [e.status for e in enrollments]
        completed = [s.lessons_completed if s else 0 for s in snapshots]
        progress = [
            actual_progress(done, e.lessons_total)
            for e, done in zip(enrollments, completed, strict=True)
        ]

        return EnrollmentStatistics(
            student_id=student_id,
            total_enrollments=len(enrollments),
            active_enrollments=statuses.count(EnrollmentStatus.ACTIVE.value),
            completed_enrollments=statuses.count(EnrollmentStatus.COMPLETED.value),
            paused_enrollments=statuses.count(EnrollmentStatus.PAUSED.value),
            total_lessons=sum(e.lessons_total for e in enrollments),
            lessons_completed=sum(completed),
            total_time_spent_minutes=sum(s.time_spent_minutes for s in snapshots if s),
            average_progress_pct=(
                round(sum(progress) / len(progress) * 100, 2) if progress else 0.0
            ),
            computed_at=now,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _load_snapshots(
        self, student_id: UUID, enrollments: list[Enrollment]
    ) -> list[ProgressSnapshot | None]:
        """One snapshot per enrollment, at most ``max_concurrent_reads`` in flight."""
        semaphore = asyncio.Semaphore(self.max_concurrent_reads)

        async def load(course_id: UUID) -> ProgressSnapshot | None:
            async with semaphore:
                return await self.store.get_snapshot(student_id, course_id)

        return list(await asyncio.gather(*(load(e.course_id) for e in enrollments)))

    async def _complete_enrollment(self, snapshot: ProgressSnapshot) -> bool:
        """Mark the enrollment completed once every lesson is done.

        Best-effort like the dashboard refresh: the snapshot stays the record
        of truth and a failure here is only logged.
        """
        try:
            enrollment = await self.enrollments.get_enrollment(
                snapshot.student_id, snapshot.course_id
            )
            if (
                enrollment is None
                or enrollment.lessons_total <= 0
                or snapshot.lessons_completed < enrollment.lessons_total
                or enrollment.status == EnrollmentStatus.COMPLETED.value
            ):
                return False
            await self.enrollments.update_status(
                snapshot.student_id, snapshot.course_id, EnrollmentStatus.COMPLETED
            )
        except (SyncError, EnrollmentError) as e:
            logger.warning(
                "enrollment_completion_failed",
                student_id=str(snapshot.student_id),
                course_id=str(snapshot.course_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        logger.info(
            "course_completed",
            student_id=str(snapshot.student_id),
            course_id=str(snapshot.course_id),
            lessons_completed=snapshot.lessons_completed,
        )
        return True

    def _dashboard_entry(
        self,
        enrollment: Enrollment,
        snapshot: ProgressSnapshot | None,
        now: datetime,
    ) -> CourseDashboardEntry:
        lessons_completed = snapshot.lessons_completed if snapshot else 0
        deviation = compute_deviation(
            enrollment, lessons_completed, now, self.deviation_threshold
        )
        return CourseDashboardEntry(
            course_id=enrollment.course_id,
            status=EnrollmentStatus(enrollment.status),
            enrolled_at=enrollment.enrolled_at,
            lessons_completed=lessons_completed,
            lessons_total=enrollment.lessons_total,
            progress_pct=round(deviation.actual_progress * 100, 2),
            deviation=DeviationResponse.from_result(deviation),
            time_spent_minutes=snapshot.time_spent_minutes if snapshot else 0,
            quiz_average_pct=snapshot.quiz_average_pct if snapshot else None,
            last_activity_at=snapshot.last_activity_at if snapshot else None,
        )

    async def _refresh_dashboard(self, student_id: UUID) -> bool:
        """Best-effort dashboard republish; never undoes the snapshot write."""
        if self.publisher is None or not self.publisher.enabled:
            return False
        try:
            summary = await self.get_real_time_dashboard_data(student_id)
            return await self.publisher.publish_dashboard(summary)
        except (SyncError, RedisError) as e:
            logger.warning(
                "dashboard_refresh_failed",
                student_id=str(student_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

    async def _publish_statistics(self, statistics: EnrollmentStatistics) -> None:
        if self.publisher is None or not self.publisher.enabled:
            return
        try:
            await self.publisher.publish_statistics(statistics)
        except RedisError as e:
            logger.warning(
                "enrollment_stats_publish_failed",
                student_id=str(statistics.student_id),
                error=str(e),
            )

    @staticmethod
    def _write_failed(
        action: LearningAction,
        student_id: UUID,
        course_id: UUID | None,
        error: StorageUnavailableError,
    ) -> SyncOutcome:
        logger.error(
            "sync_storage_unavailable",
            action=action.value,
            student_id=str(student_id),
            course_id=str(course_id) if course_id else None,
            error=error.message,
        )
        return SyncOutcome(
            success=False,
            action=action.value,
            student_id=student_id,
            course_id=course_id,
            error_code=error.code,
            error_message=error.message,
        )
