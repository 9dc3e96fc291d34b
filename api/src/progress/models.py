"""Database models for per-course progress snapshots.

One row per (student_id, course_id) holds everything the dashboard needs:
completed lesson ids, accumulated study time, the latest quiz result per
lesson and the last activity timestamp.

Rows are only ever changed through lightweight transactions guarded by the
``version`` column, so two concurrent writers for the same pair cannot
overwrite each other (see ProgressSnapshotStore).
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import orjson

from src.enrollments.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Composite partition key: every read and write is a single-partition point
# operation, which keeps LWT contention scoped to one student+course pair.
PROGRESS_SNAPSHOTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_snapshots (
    student_id UUID,
    course_id UUID,
    completed_lesson_ids SET<UUID>,
    time_spent_minutes INT,
    quiz_results MAP<UUID, TEXT>,
    last_activity_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    version INT,
    PRIMARY KEY ((student_id, course_id))
)
"""

PROGRESS_TABLES_CQL = [
    PROGRESS_SNAPSHOTS_TABLE_CQL,
]


def _latest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


# ==============================================================================
# Entity Classes
# ==============================================================================


class QuizResult:
    """Latest quiz attempt for one lesson.

    Stored as a JSON document in the ``quiz_results`` map, keyed by lesson id.
    """

    def __init__(
        self,
        lesson_id: UUID,
        score: float,
        max_score: float,
        passed: bool,
        attempted_at: datetime,
        time_spent_minutes: int = 0,
        attempts: int = 1,
    ):
        self.lesson_id = lesson_id
        self.score = score
        self.max_score = max_score
        self.passed = passed
        self.attempted_at = ensure_utc_aware(attempted_at)
        self.time_spent_minutes = time_spent_minutes
        self.attempts = attempts

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return round(self.score / self.max_score * 100, 2)

    def to_json(self) -> str:
        return orjson.dumps(
            {
                "lesson_id": self.lesson_id,
                "score": self.score,
                "max_score": self.max_score,
                "passed": self.passed,
                "attempted_at": self.attempted_at,
                "time_spent_minutes": self.time_spent_minutes,
                "attempts": self.attempts,
            }
        ).decode()

    @classmethod
    def from_json(cls, raw: str | bytes) -> "QuizResult":
        data = orjson.loads(raw)
        return cls(
            lesson_id=UUID(data["lesson_id"]),
            score=data["score"],
            max_score=data["max_score"],
            passed=data["passed"],
            attempted_at=datetime.fromisoformat(data["attempted_at"]),
            time_spent_minutes=data.get("time_spent_minutes", 0),
            attempts=data.get("attempts", 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "passed": self.passed,
            "attempted_at": self.attempted_at,
            "time_spent_minutes": self.time_spent_minutes,
            "attempts": self.attempts,
        }

    def __repr__(self) -> str:
        return f"<QuizResult lesson={self.lesson_id} {self.score}/{self.max_score}>"


class ProgressSnapshot:
    """Canonical progress record of one student in one course.

    Instances are treated as immutable values: the ``with_*`` methods return
    a new snapshot with ``version`` bumped by one, which is the value the
    conditional write will store.

    Attributes:
        student_id: Student UUID
        course_id: Course UUID
        completed_lesson_ids: Set of completed lesson UUIDs
        time_spent_minutes: Accumulated study time (lessons and quizzes)
        quiz_results: Latest attempt per lesson
        last_activity_at: Most recent activity timestamp seen
        created_at: First event for the pair
        updated_at: Last write
        version: Optimistic concurrency token (0 = never written)
    """

    def __init__(
        self,
        student_id: UUID,
        course_id: UUID,
        completed_lesson_ids: set[UUID] | frozenset[UUID] | None = None,
        time_spent_minutes: int = 0,
        quiz_results: dict[UUID, QuizResult] | None = None,
        last_activity_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        version: int = 0,
    ):
        self.student_id = student_id
        self.course_id = course_id
        self.completed_lesson_ids = frozenset(completed_lesson_ids or ())
        self.time_spent_minutes = time_spent_minutes
        self.quiz_results = dict(quiz_results or {})
        self.last_activity_at = ensure_utc_aware(last_activity_at)
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at
        self.version = version

    @property
    def lessons_completed(self) -> int:
        """Always derived from the id set, so it can never double count."""
        return len(self.completed_lesson_ids)

    @property
    def quiz_average_pct(self) -> float | None:
        if not self.quiz_results:
            return None
        scores = [result.percentage for result in self.quiz_results.values()]
        return round(sum(scores) / len(scores), 2)

    def _evolve(self, **changes: Any) -> "ProgressSnapshot":
        values = {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "completed_lesson_ids": self.completed_lesson_ids,
            "time_spent_minutes": self.time_spent_minutes,
            "quiz_results": self.quiz_results,
            "last_activity_at": self.last_activity_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version + 1,
        }
        values.update(changes)
        return ProgressSnapshot(**values)

    def with_lesson_completion(
        self,
        lesson_id: UUID,
        time_spent_minutes: int,
        completed_at: datetime,
    ) -> "ProgressSnapshot":
        """Add a completed lesson; repeating a lesson only adds study time."""
        completed_at = ensure_utc_aware(completed_at)
        return self._evolve(
            completed_lesson_ids=self.completed_lesson_ids | {lesson_id},
            time_spent_minutes=self.time_spent_minutes + time_spent_minutes,
            last_activity_at=_latest(self.last_activity_at, completed_at),
            updated_at=datetime.now(UTC),
        )

    def with_quiz_result(self, result: QuizResult) -> "ProgressSnapshot":
        """Record a quiz attempt, keeping only the newest attempt per lesson."""
        quiz_results = dict(self.quiz_results)
        previous = quiz_results.get(result.lesson_id)
        if previous is None:
            quiz_results[result.lesson_id] = result
        else:
            newest = result if result.attempted_at >= previous.attempted_at else previous
            quiz_results[result.lesson_id] = QuizResult(
                lesson_id=newest.lesson_id,
                score=newest.score,
                max_score=newest.max_score,
                passed=newest.passed,
                attempted_at=newest.attempted_at,
                time_spent_minutes=newest.time_spent_minutes,
                attempts=previous.attempts + 1,
            )
        return self._evolve(
            quiz_results=quiz_results,
            time_spent_minutes=self.time_spent_minutes + result.time_spent_minutes,
            last_activity_at=_latest(self.last_activity_at, result.attempted_at),
            updated_at=datetime.now(UTC),
        )

    @classmethod
    def from_row(cls, row: Any) -> "ProgressSnapshot":
        """Create ProgressSnapshot from a Cassandra row.

        Empty collections come back from Cassandra as None.
        """
        raw_quizzes = row.quiz_results or {}
        return cls(
            student_id=row.student_id,
            course_id=row.course_id,
            completed_lesson_ids=set(row.completed_lesson_ids or ()),
            time_spent_minutes=row.time_spent_minutes or 0,
            quiz_results={
                lesson_id: QuizResult.from_json(raw)
                for lesson_id, raw in raw_quizzes.items()
            },
            last_activity_at=row.last_activity_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
            version=row.version or 0,
        )

    def quiz_results_column(self) -> dict[UUID, str]:
        """Value bound to the ``quiz_results`` map column."""
        return {lesson_id: r.to_json() for lesson_id, r in self.quiz_results.items()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "lessons_completed": self.lessons_completed,
            "completed_lesson_ids": sorted(self.completed_lesson_ids, key=str),
            "time_spent_minutes": self.time_spent_minutes,
            "quiz_results": [r.to_dict() for r in self.quiz_results.values()],
            "quiz_average_pct": self.quiz_average_pct,
            "last_activity_at": self.last_activity_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return (
            f"<ProgressSnapshot student={self.student_id} course={self.course_id} "
            f"{self.lessons_completed} lessons v{self.version}>"
        )
