"""In-memory stand-ins for the Cassandra session used by the services.

Only understands the statements the services prepare. Lightweight
transactions (IF NOT EXISTS / IF version = ?) are evaluated atomically, and
every ``aexecute`` yields to the event loop so concurrent callers interleave
the way they would against a real cluster.
"""

import asyncio
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any


SNAPSHOT_COLUMNS = (
    "student_id",
    "course_id",
    "completed_lesson_ids",
    "time_spent_minutes",
    "quiz_results",
    "last_activity_at",
    "created_at",
    "updated_at",
    "version",
)

ENROLLMENT_VALUE_COLUMNS = (
    "status",
    "enrolled_at",
    "duration_days",
    "lessons_total",
    "updated_at",
)


class FakeStatement:
    def __init__(self, cql: str):
        self.cql = " ".join(cql.split())


class FakeResult:
    def __init__(self, rows: list[Any] | None = None, was_applied: bool = True):
        self._rows = rows or []
        self.was_applied = was_applied

    def one(self) -> Any:
        return self._rows[0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


def _row(values: dict[str, Any]) -> SimpleNamespace:
    # Cassandra returns empty collections as None
    return SimpleNamespace(
        **{k: (v if v not in (set(), {}) else None) for k, v in values.items()}
    )


class FakeCassandraSession:
    """Enough of a cassandra-asyncio-driver session for the services."""

    def __init__(self) -> None:
        self.snapshots: dict[tuple, dict[str, Any]] = {}
        self.enrollments_by_student: dict[tuple, dict[str, Any]] = {}
        self.enrollments_by_course: dict[tuple, dict[str, Any]] = {}
        self.executed: list[str] = []
        self.fail_with: BaseException | None = None
        self.before_write: Callable[[], None] | None = None

    def prepare(self, cql: str) -> FakeStatement:
        return FakeStatement(cql)

    async def aexecute(self, statement: FakeStatement, params: list[Any]) -> FakeResult:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

        cql = statement.cql
        self.executed.append(cql)

        if cql.startswith(("INSERT", "UPDATE")) and self.before_write is not None:
            hook, self.before_write = self.before_write, None
            hook()

        if "progress_snapshots" in cql:
            return self._snapshots(cql, params)
        return self._enrollments(cql, params)

    # ==========================================================================
    # progress_snapshots
    # ==========================================================================

    def _snapshots(self, cql: str, params: list[Any]) -> FakeResult:
        if cql.startswith("SELECT"):
            values = self.snapshots.get((params[0], params[1]))
            return FakeResult([_row(values)] if values else [])

        if cql.startswith("INSERT"):
            values = dict(zip(SNAPSHOT_COLUMNS, params, strict=True))
            key = (values["student_id"], values["course_id"])
            if key in self.snapshots:
                return FakeResult(was_applied=False)
            self.snapshots[key] = values
            return FakeResult(was_applied=True)

        # UPDATE ... IF version = ?
        (ids, minutes, quizzes, last_activity, updated_at, version,
         student_id, course_id, expected_version) = params
        current = self.snapshots.get((student_id, course_id))
        if current is None or current["version"] != expected_version:
            return FakeResult(was_applied=False)
        current.update(
            completed_lesson_ids=ids,
            time_spent_minutes=minutes,
            quiz_results=quizzes,
            last_activity_at=last_activity,
            updated_at=updated_at,
            version=version,
        )
        return FakeResult(was_applied=True)

    # ==========================================================================
    # enrollments / enrollments_by_student
    # ==========================================================================

    def _enrollments(self, cql: str, params: list[Any]) -> FakeResult:
        if cql.startswith("SELECT"):
            if len(params) == 2:  # noqa: PLR2004
                values = self.enrollments_by_student.get((params[0], params[1]))
                return FakeResult([_row(values)] if values else [])
            rows = [
                _row(values)
                for (student_id, _), values in self.enrollments_by_student.items()
                if student_id == params[0]
            ]
            return FakeResult(rows)

        first, second, *rest = params
        values = dict(zip(ENROLLMENT_VALUE_COLUMNS, rest, strict=True))
        if "enrollments_by_student" in cql:
            self.enrollments_by_student[(first, second)] = {
                "student_id": first,
                "course_id": second,
                **values,
            }
        else:
            self.enrollments_by_course[(first, second)] = {
                "course_id": first,
                "student_id": second,
                **values,
            }
        return FakeResult()
