"""Database models for course enrollments.

Cassandra tables:
- enrollments: partitioned by course_id ("who is enrolled in this course?")
- enrollments_by_student: lookup partitioned by student_id, used by the
  dashboard and statistics read paths

Both tables are written together (dual-write), same as every other lookup
table in the service.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class EnrollmentStatus(str, Enum):
    """Course enrollment status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    student_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    duration_days INT,
    lessons_total INT,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, student_id)
)
"""

ENROLLMENTS_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_student (
    student_id UUID,
    course_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    duration_days INT,
    lessons_total INT,
    updated_at TIMESTAMP,
    PRIMARY KEY (student_id, course_id)
)
"""

ENROLLMENTS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_STUDENT_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """One student's registration in one course.

    Attributes:
        student_id: Student UUID
        course_id: Course UUID
        status: active, completed or paused
        enrolled_at: Enrollment start (pace is measured from here)
        duration_days: Declared course length in days (None = no deadline)
        lessons_total: Number of lessons in the course
        updated_at: Last status change
    """

    def __init__(
        self,
        student_id: UUID,
        course_id: UUID,
        status: str = EnrollmentStatus.ACTIVE.value,
        enrolled_at: datetime | None = None,
        duration_days: int | None = None,
        lessons_total: int = 0,
        updated_at: datetime | None = None,
    ):
        self.student_id = student_id
        self.course_id = course_id
        self.status = status
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.duration_days = duration_days
        self.lessons_total = lessons_total
        self.updated_at = ensure_utc_aware(updated_at) or self.enrolled_at

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE.value

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from a row of either table."""
        return cls(
            student_id=row.student_id,
            course_id=row.course_id,
            status=row.status or EnrollmentStatus.ACTIVE.value,
            enrolled_at=row.enrolled_at,
            duration_days=row.duration_days,
            lessons_total=row.lessons_total or 0,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "status": self.status,
            "enrolled_at": self.enrolled_at,
            "duration_days": self.duration_days,
            "lessons_total": self.lessons_total,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment student={self.student_id} course={self.course_id} "
            f"{self.status} {self.lessons_total} lessons>"
        )
