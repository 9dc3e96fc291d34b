"""Pydantic schemas for course enrollments."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Enrollment, EnrollmentStatus


class EnrollRequest(BaseModel):
    """Request to enroll a student in a course.

    ``student_id`` lets teachers and admins enroll someone else; students
    omit it and are enrolled themselves.
    """

    course_id: UUID = Field(..., description="Course UUID")
    lessons_total: int = Field(..., ge=0, description="Lessons in the course")
    duration_days: int | None = Field(
        None, gt=0, description="Planned course length in days (None = no deadline)"
    )
    student_id: UUID | None = Field(None, description="Student acted on")


class UpdateEnrollmentRequest(BaseModel):
    """Request to change enrollment status."""

    status: EnrollmentStatus = Field(..., description="New status")
    student_id: UUID | None = Field(None, description="Student acted on")


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    student_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    enrolled_at: datetime
    duration_days: int | None = None
    lessons_total: int
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(
            student_id=entity.student_id,
            course_id=entity.course_id,
            status=EnrollmentStatus(entity.status),
            enrolled_at=entity.enrolled_at,
            duration_days=entity.duration_days,
            lessons_total=entity.lessons_total,
            updated_at=entity.updated_at,
        )


class EnrollmentActionResponse(BaseModel):
    """Result of an enrollment change."""

    success: bool = True
    enrollment: EnrollmentResponse


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int
