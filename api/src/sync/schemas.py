"""Pydantic schemas for sync results, dashboard aggregates and batch reports."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.analytics import DeviationLabel, DeviationResult
from src.enrollments.models import EnrollmentStatus


# ==============================================================================
# Orchestrator inputs/outputs
# ==============================================================================


class QuizSubmission(BaseModel):
    """Quiz attempt facts passed to the orchestrator."""

    score: float = Field(..., ge=0)
    max_score: float = Field(..., gt=0)
    time_spent_minutes: int = Field(0, ge=0)
    passed: bool = False


class EnrollmentStatistics(BaseModel):
    """Aggregate enrollment figures of one student, recomputed from source."""

    student_id: UUID
    total_enrollments: int = 0
    active_enrollments: int = 0
    completed_enrollments: int = 0
    paused_enrollments: int = 0
    total_lessons: int = Field(0, description="Lessons across all enrolled courses")
    lessons_completed: int = 0
    total_time_spent_minutes: int = 0
    average_progress_pct: float = 0.0
    computed_at: datetime


class SyncOutcome(BaseModel):
    """Result of a sync operation; failures are reported, not raised."""

    success: bool
    action: str
    student_id: UUID
    course_id: UUID | None = None
    lessons_completed: int | None = None
    course_completed: bool = False
    dashboard_refreshed: bool = False
    statistics: EnrollmentStatistics | None = None
    error_code: str | None = None
    error_message: str | None = None


# ==============================================================================
# Dashboard
# ==============================================================================


class DeviationResponse(BaseModel):
    """Actual vs expected pace of one course."""

    actual_progress: float = Field(..., ge=0, le=1)
    expected_progress: float = Field(..., ge=0, le=1)
    deviation_pct: int
    label: DeviationLabel
    days_elapsed: int
    duration_days: int | None = None

    @classmethod
    def from_result(cls, result: DeviationResult) -> "DeviationResponse":
        return cls(
            actual_progress=result.actual_progress,
            expected_progress=result.expected_progress,
            deviation_pct=result.deviation_pct,
            label=result.label,
            days_elapsed=result.days_elapsed,
            duration_days=result.duration_days,
        )


class CourseDashboardEntry(BaseModel):
    """One active course on the real-time dashboard."""

    course_id: UUID
    status: EnrollmentStatus
    enrolled_at: datetime
    lessons_completed: int
    lessons_total: int
    progress_pct: float
    deviation: DeviationResponse
    time_spent_minutes: int
    quiz_average_pct: float | None = None
    last_activity_at: datetime | None = None


class DashboardSummary(BaseModel):
    """Real-time dashboard of a student, most recent activity first."""

    student_id: UUID
    courses: list[CourseDashboardEntry]
    active_courses: int
    courses_ahead: int
    courses_on_track: int
    courses_behind: int
    average_progress_pct: float
    total_time_spent_minutes: int
    last_activity_at: datetime | None = None
    generated_at: datetime


# ==============================================================================
# Batch
# ==============================================================================


class BatchSyncRequest(BaseModel):
    """Admin request to resync a page of students.

    The size limit is enforced by the batch coordinator so that oversized
    requests get the dedicated ``batch_limit_exceeded`` error.
    """

    student_ids: list[UUID] = Field(..., description="Students to resync (max 100)")


class StudentSyncResult(BaseModel):
    student_id: UUID
    success: bool
    courses_synced: int = 0
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: float = 0.0


class BatchSyncReport(BaseModel):
    """Per-student outcome of a batch resync (partial success allowed)."""

    requested: int
    unique: int
    succeeded: int
    failed: int
    results: list[StudentSyncResult]
    started_at: datetime
    finished_at: datetime


class DispatcherStats(BaseModel):
    running: bool
    workers: int
    queue_size: int
    queue_length: int
    queue_utilization: float
    events_dispatched: int
    events_dropped: int
    events_processed: int
    events_failed: int
    uptime_seconds: float
