"""Sync events handed from the capture layer to the background dispatcher.

Events are small immutable values holding only the facts needed to replay
the action against the orchestrator, plus the request id for log
correlation.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID


class LearningAction(str, Enum):
    """Kinds of learning actions that trigger a sync."""

    LESSON_COMPLETED = "lesson_completed"
    QUIZ_SUBMITTED = "quiz_submitted"
    ENROLLMENT_CHANGED = "enrollment_changed"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SyncEvent:
    student_id: UUID
    request_id: str | None = None
    occurred_at: datetime = field(default_factory=_now)

    action = LearningAction.ENROLLMENT_CHANGED


@dataclass(frozen=True)
class LessonCompletedEvent(SyncEvent):
    course_id: UUID | None = None
    module_id: UUID | None = None
    lesson_id: UUID | None = None
    time_spent_minutes: int = 0

    action = LearningAction.LESSON_COMPLETED


@dataclass(frozen=True)
class QuizSubmittedEvent(SyncEvent):
    course_id: UUID | None = None
    lesson_id: UUID | None = None
    score: float = 0.0
    max_score: float = 0.0
    time_spent_minutes: int = 0
    passed: bool = False

    action = LearningAction.QUIZ_SUBMITTED


@dataclass(frozen=True)
class EnrollmentChangedEvent(SyncEvent):
    course_id: UUID | None = None

    action = LearningAction.ENROLLMENT_CHANGED
