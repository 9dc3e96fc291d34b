"""Pydantic schemas for learning actions and progress snapshots."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .models import ProgressSnapshot


# ==============================================================================
# Learning Action Requests
# ==============================================================================


class LessonCompletionRequest(BaseModel):
    """A student finished a lesson.

    ``student_id`` is only needed when a teacher or admin records the
    completion for someone else.
    """

    course_id: UUID = Field(..., description="Course UUID")
    lesson_id: UUID = Field(..., description="Lesson UUID")
    module_id: UUID | None = Field(None, description="Module UUID")
    time_spent_minutes: int = Field(0, ge=0, description="Study time for the lesson")
    student_id: UUID | None = Field(None, description="Student acted on")


class QuizSubmissionRequest(BaseModel):
    """A student submitted a quiz attached to a lesson."""

    course_id: UUID = Field(..., description="Course UUID")
    lesson_id: UUID = Field(..., description="Lesson UUID")
    score: float = Field(..., ge=0, description="Points scored")
    max_score: float = Field(..., gt=0, description="Maximum points")
    time_spent_minutes: int = Field(0, ge=0, description="Time spent on the quiz")
    passed: bool = Field(False, description="Whether the attempt passed")
    student_id: UUID | None = Field(None, description="Student acted on")

    @model_validator(mode="after")
    def score_within_max(self) -> "QuizSubmissionRequest":
        if self.score > self.max_score:
            msg = "score must not exceed max_score"
            raise ValueError(msg)
        return self


class LearningActionResponse(BaseModel):
    """Acknowledgement of a learning action; the sync happens afterwards."""

    success: bool = True
    action: str
    student_id: UUID
    course_id: UUID
    lesson_id: UUID
    accepted_at: datetime


# ==============================================================================
# Snapshot Responses
# ==============================================================================


class QuizResultResponse(BaseModel):
    lesson_id: UUID
    score: float
    max_score: float
    percentage: float
    passed: bool
    attempted_at: datetime
    time_spent_minutes: int
    attempts: int


class ProgressSnapshotResponse(BaseModel):
    """Current progress of a student in one course."""

    student_id: UUID
    course_id: UUID
    lessons_completed: int
    completed_lesson_ids: list[UUID]
    time_spent_minutes: int
    quiz_results: list[QuizResultResponse]
    quiz_average_pct: float | None = None
    last_activity_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_entity(cls, entity: ProgressSnapshot) -> "ProgressSnapshotResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())
