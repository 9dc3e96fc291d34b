"""Enrollment service layer.

Thin collaborator of the sync engine: the engine only reads enrollments
(``get_enrollment``, ``list_active_enrollments``); creation and status
changes exist so the API is usable end to end.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.sync.exceptions import storage_errors

from .models import Enrollment, EnrollmentStatus


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class EnrollmentError(Exception):
    """Base enrollment error."""

    def __init__(self, message: str, code: str = "enrollment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotEnrolledError(EnrollmentError):
    """Student not enrolled in course."""

    def __init__(self, message: str = "Student is not enrolled in this course"):
        super().__init__(message, "not_enrolled")


class AlreadyEnrolledError(EnrollmentError):
    """Student already enrolled."""

    def __init__(self, message: str = "Student is already enrolled in this course"):
        super().__init__(message, "already_enrolled")


# ==============================================================================
# Enrollment Service
# ==============================================================================


class EnrollmentService:
    """Service for course enrollments."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_student
            WHERE student_id = ? AND course_id = ?
        """)

        self._get_student_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_student
            WHERE student_id = ?
        """)

        self._upsert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, student_id, status, enrolled_at, duration_days,
             lessons_total, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._upsert_enrollment_by_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_student
            (student_id, course_id, status, enrolled_at, duration_days,
             lessons_total, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_enrollment(
        self, student_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        """Get enrollment by student and course."""
        with storage_errors(
            "get_enrollment", student_id=student_id, course_id=course_id
        ):
            result = await self.session.aexecute(
                self._get_enrollment, [student_id, course_id]
            )
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def list_enrollments(self, student_id: UUID) -> list[Enrollment]:
        """Get all enrollments of a student, any status."""
        with storage_errors("list_enrollments", student_id=student_id):
            rows = await self.session.aexecute(
                self._get_student_enrollments, [student_id]
            )
        return [Enrollment.from_row(row) for row in rows]

    async def list_active_enrollments(self, student_id: UUID) -> list[Enrollment]:
        """Get enrollments the student is currently following."""
        return [e for e in await self.list_enrollments(student_id) if e.is_active]

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def enroll(
        self,
        student_id: UUID,
        course_id: UUID,
        lessons_total: int,
        duration_days: int | None = None,
        enrolled_at: datetime | None = None,
    ) -> Enrollment:
        """Enroll a student in a course.

        Raises:
            AlreadyEnrolledError: If the student is already enrolled
        """
        if await self.get_enrollment(student_id, course_id):
            raise AlreadyEnrolledError

        enrollment = Enrollment(
            student_id=student_id,
            course_id=course_id,
            status=EnrollmentStatus.ACTIVE.value,
            enrolled_at=enrolled_at or datetime.now(UTC),
            duration_days=duration_days,
            lessons_total=lessons_total,
        )
        await self._save(enrollment)

        logger.info(
            "student_enrolled",
            student_id=str(student_id),
            course_id=str(course_id),
            lessons_total=lessons_total,
            duration_days=duration_days,
        )
        return enrollment

    async def update_status(
        self,
        student_id: UUID,
        course_id: UUID,
        status: EnrollmentStatus,
    ) -> Enrollment:
        """Change enrollment status (active, completed, paused).

        Raises:
            NotEnrolledError: If there is no enrollment to update
        """
        enrollment = await self.get_enrollment(student_id, course_id)
        if enrollment is None:
            raise NotEnrolledError

        previous = enrollment.status
        enrollment.status = status.value
        enrollment.updated_at = datetime.now(UTC)
        await self._save(enrollment)

        logger.info(
            "enrollment_status_changed",
            student_id=str(student_id),
            course_id=str(course_id),
            previous_status=previous,
            status=status.value,
        )
        return enrollment

    async def _save(self, enrollment: Enrollment) -> None:
        """Write enrollment to both tables (dual-write)."""
        values = [
            enrollment.status,
            enrollment.enrolled_at,
            enrollment.duration_days,
            enrollment.lessons_total,
            enrollment.updated_at,
        ]
        with storage_errors(
            "save_enrollment",
            student_id=enrollment.student_id,
            course_id=enrollment.course_id,
        ):
            await self.session.aexecute(
                self._upsert_enrollment,
                [enrollment.course_id, enrollment.student_id, *values],
            )
            await self.session.aexecute(
                self._upsert_enrollment_by_student,
                [enrollment.student_id, enrollment.course_id, *values],
            )
