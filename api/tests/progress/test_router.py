"""Tests for progress and dashboard routes."""

from uuid import uuid4

from cassandra import OperationTimedOut

from src.auth.permissions import UserRole
from src.sync.models import LessonCompletedEvent, QuizSubmittedEvent
from tests.conftest import auth_headers


def _enroll(client, student_id, **kwargs):
    body = {"course_id": str(uuid4()), "lessons_total": 24, "duration_days": 60}
    body.update(kwargs)
    response = client.post(
        "/v1/enrollments", json=body, headers=auth_headers(student_id)
    )
    assert response.status_code == 201
    return response.json()["enrollment"]["course_id"]


class TestCompleteLesson:
    def test_accepted_and_queued(self, client, app) -> None:
        student_id = uuid4()
        course_id = _enroll(client, student_id)
        lesson_id = str(uuid4())

        response = client.post(
            "/v1/progress/lessons/complete",
            json={"course_id": course_id, "lesson_id": lesson_id, "time_spent_minutes": 9},
            headers=auth_headers(student_id),
        )

        assert response.status_code == 202
        data = response.json()
        assert data["success"] is True
        assert data["action"] == "lesson_completed"
        assert data["student_id"] == str(student_id)

        queue = app.state.sync_dispatcher._queue
        events = [queue.get_nowait() for _ in range(queue.qsize())]
        lesson_events = [e for e in events if isinstance(e, LessonCompletedEvent)]
        assert len(lesson_events) == 1
        assert str(lesson_events[0].lesson_id) == lesson_id
        assert lesson_events[0].time_spent_minutes == 9

    def test_requires_authentication(self, client) -> None:
        response = client.post(
            "/v1/progress/lessons/complete",
            json={"course_id": str(uuid4()), "lesson_id": str(uuid4())},
        )
        assert response.status_code == 401
        assert response.json()["error"] is True

    def test_not_enrolled(self, client) -> None:
        response = client.post(
            "/v1/progress/lessons/complete",
            json={"course_id": str(uuid4()), "lesson_id": str(uuid4())},
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 404

    def test_student_cannot_act_for_others(self, client) -> None:
        response = client.post(
            "/v1/progress/lessons/complete",
            json={
                "course_id": str(uuid4()),
                "lesson_id": str(uuid4()),
                "student_id": str(uuid4()),
            },
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 403

    def test_teacher_acts_for_student(self, client) -> None:
        student_id = uuid4()
        course_id = _enroll(client, student_id)

        response = client.post(
            "/v1/progress/lessons/complete",
            json={
                "course_id": course_id,
                "lesson_id": str(uuid4()),
                "student_id": str(student_id),
            },
            headers=auth_headers(uuid4(), UserRole.TEACHER),
        )

        assert response.status_code == 202
        assert response.json()["student_id"] == str(student_id)

    def test_negative_time_is_validation_error(self, client) -> None:
        response = client.post(
            "/v1/progress/lessons/complete",
            json={
                "course_id": str(uuid4()),
                "lesson_id": str(uuid4()),
                "time_spent_minutes": -3,
            },
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 422


class TestSubmitQuiz:
    def test_accepted_and_queued(self, client, app) -> None:
        student_id = uuid4()
        course_id = _enroll(client, student_id)

        response = client.post(
            "/v1/progress/quizzes/submit",
            json={
                "course_id": course_id,
                "lesson_id": str(uuid4()),
                "score": 7.5,
                "max_score": 10,
                "passed": True,
            },
            headers=auth_headers(student_id),
        )

        assert response.status_code == 202
        queue = app.state.sync_dispatcher._queue
        events = [queue.get_nowait() for _ in range(queue.qsize())]
        assert any(isinstance(e, QuizSubmittedEvent) for e in events)

    def test_score_above_max(self, client) -> None:
        response = client.post(
            "/v1/progress/quizzes/submit",
            json={
                "course_id": str(uuid4()),
                "lesson_id": str(uuid4()),
                "score": 12,
                "max_score": 10,
            },
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 422


class TestProgressQueries:
    def test_no_progress_yet(self, client) -> None:
        student_id = uuid4()
        course_id = _enroll(client, student_id)

        response = client.get(
            f"/v1/progress/courses/{course_id}", headers=auth_headers(student_id)
        )
        assert response.status_code == 404

    def test_deviation(self, client) -> None:
        student_id = uuid4()
        course_id = _enroll(client, student_id)

        response = client.get(
            f"/v1/progress/courses/{course_id}/deviation",
            headers=auth_headers(student_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["actual_progress"] == 0.0
        assert data["label"] in {"ahead", "on_track", "behind"}
        assert data["duration_days"] == 60

    def test_deviation_not_enrolled(self, client) -> None:
        response = client.get(
            f"/v1/progress/courses/{uuid4()}/deviation",
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 404


class TestDashboard:
    def test_realtime_dashboard(self, client) -> None:
        student_id = uuid4()
        _enroll(client, student_id)
        _enroll(client, student_id)

        response = client.get("/v1/dashboard/realtime", headers=auth_headers(student_id))

        assert response.status_code == 200
        data = response.json()
        assert data["student_id"] == str(student_id)
        assert data["active_courses"] == 2
        assert all(c["lessons_completed"] == 0 for c in data["courses"])

    def test_statistics(self, client) -> None:
        student_id = uuid4()
        _enroll(client, student_id, lessons_total=10)

        response = client.get(
            "/v1/dashboard/statistics", headers=auth_headers(student_id)
        )

        assert response.status_code == 200
        assert response.json()["total_lessons"] == 10

    def test_storage_unavailable_returns_503(self, client, fake_session) -> None:
        fake_session.fail_with = OperationTimedOut("timed out")

        response = client.get("/v1/dashboard/realtime", headers=auth_headers(uuid4()))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"

    def test_other_student_forbidden(self, client) -> None:
        response = client.get(
            f"/v1/dashboard/realtime?student_id={uuid4()}",
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 403
