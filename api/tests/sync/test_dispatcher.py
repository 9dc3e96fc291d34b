"""Tests for SyncDispatcher."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from src.core.context import get_request_id, get_user_id
from src.sync.dispatcher import SyncDispatcher
from src.sync.models import EnrollmentChangedEvent, LessonCompletedEvent, QuizSubmittedEvent
from src.sync.orchestrator import SyncOrchestrator
from src.sync.schemas import SyncOutcome


def _outcome(success: bool = True) -> SyncOutcome:
    return SyncOutcome(success=success, action="lesson_completed", student_id=uuid4())


@pytest.fixture
def mock_orchestrator() -> Mock:
    orchestrator = Mock(spec=SyncOrchestrator)
    orchestrator.sync_lesson_completion = AsyncMock(return_value=_outcome())
    orchestrator.sync_quiz_completion = AsyncMock(return_value=_outcome())
    orchestrator.sync_enrollment_stats = AsyncMock(return_value=_outcome())
    return orchestrator


def _lesson_event(**kwargs) -> LessonCompletedEvent:
    values = {
        "student_id": uuid4(),
        "course_id": uuid4(),
        "lesson_id": uuid4(),
        "time_spent_minutes": 10,
        **kwargs,
    }
    return LessonCompletedEvent(**values)


class TestDispatch:
    def test_dispatch_is_non_blocking(self, mock_orchestrator) -> None:
        dispatcher = SyncDispatcher(mock_orchestrator, queue_size=10)

        assert dispatcher.dispatch(_lesson_event()) is True
        assert dispatcher.queue_length == 1
        mock_orchestrator.sync_lesson_completion.assert_not_called()

    def test_full_queue_drops_event(self, mock_orchestrator) -> None:
        dispatcher = SyncDispatcher(mock_orchestrator, queue_size=2)

        results = [dispatcher.dispatch(_lesson_event()) for _ in range(3)]

        assert results == [True, True, False]
        stats = dispatcher.get_stats()
        assert stats.events_dropped == 1
        assert stats.events_dispatched == 2
        assert stats.queue_utilization == 100.0


class TestWorkers:
    @pytest.mark.asyncio
    async def test_routes_events(self, mock_orchestrator) -> None:
        dispatcher = SyncDispatcher(mock_orchestrator, workers=2)
        await dispatcher.start()
        lesson = _lesson_event()
        quiz = QuizSubmittedEvent(
            student_id=uuid4(),
            course_id=uuid4(),
            lesson_id=uuid4(),
            score=7,
            max_score=10,
            passed=True,
        )
        enrollment = EnrollmentChangedEvent(student_id=uuid4(), course_id=uuid4())

        for event in (lesson, quiz, enrollment):
            dispatcher.dispatch(event)
        await dispatcher.drain()
        await dispatcher.stop()

        mock_orchestrator.sync_lesson_completion.assert_awaited_once_with(
            lesson.student_id,
            lesson.course_id,
            None,
            lesson.lesson_id,
            10,
            occurred_at=lesson.occurred_at,
        )
        args = mock_orchestrator.sync_quiz_completion.await_args.args
        assert (
            mock_orchestrator.sync_quiz_completion.await_args.kwargs["occurred_at"]
            == quiz.occurred_at
        )
        assert args[:3] == (quiz.student_id, quiz.course_id, quiz.lesson_id)
        assert args[3].score == 7
        assert args[3].passed is True
        mock_orchestrator.sync_enrollment_stats.assert_awaited_once_with(
            enrollment.student_id
        )
        assert dispatcher.get_stats().events_processed == 3

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_worker(self, mock_orchestrator) -> None:
        mock_orchestrator.sync_lesson_completion = AsyncMock(
            side_effect=[RuntimeError("boom"), _outcome(success=False), _outcome()]
        )
        dispatcher = SyncDispatcher(mock_orchestrator, workers=1)
        await dispatcher.start()

        for _ in range(3):
            dispatcher.dispatch(_lesson_event())
        await dispatcher.drain()

        stats = dispatcher.get_stats()
        assert stats.events_failed == 2
        assert stats.events_processed == 1
        assert dispatcher.is_running is True
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_request_context_bound_while_processing(
        self, mock_orchestrator
    ) -> None:
        seen = {}

        async def capture_context(*args, **kwargs):
            seen["request_id"] = get_request_id()
            seen["user_id"] = get_user_id()
            return _outcome()

        mock_orchestrator.sync_lesson_completion = AsyncMock(side_effect=capture_context)
        dispatcher = SyncDispatcher(mock_orchestrator, workers=1)
        await dispatcher.start()
        event = _lesson_event(request_id="req-123")

        dispatcher.dispatch(event)
        await dispatcher.drain()
        await dispatcher.stop()

        assert seen == {"request_id": "req-123", "user_id": str(event.student_id)}

    @pytest.mark.asyncio
    async def test_stop_drains_pending_events(self, mock_orchestrator) -> None:
        dispatcher = SyncDispatcher(mock_orchestrator, workers=1, shutdown_timeout=1)
        await dispatcher.start()
        for _ in range(5):
            dispatcher.dispatch(_lesson_event())

        await dispatcher.stop()

        assert mock_orchestrator.sync_lesson_completion.await_count == 5
        assert dispatcher.is_running is False

    @pytest.mark.asyncio
    async def test_stop_gives_up_after_timeout(self, mock_orchestrator) -> None:
        async def never_finishes(*args, **kwargs):
            await asyncio.sleep(10)

        mock_orchestrator.sync_lesson_completion = AsyncMock(side_effect=never_finishes)
        dispatcher = SyncDispatcher(mock_orchestrator, workers=1, shutdown_timeout=0.05)
        await dispatcher.start()
        dispatcher.dispatch(_lesson_event())
        await asyncio.sleep(0)

        await dispatcher.stop()

        assert dispatcher.is_running is False
        assert dispatcher.get_stats().uptime_seconds == 0.0


class TestEventTime:
    @pytest.mark.asyncio
    async def test_last_activity_is_when_the_student_acted(
        self, orchestrator, enroll, snapshot_store, student_id, clock
    ) -> None:
        enrollment = await enroll(student_id)
        acted_at = clock.now - timedelta(hours=2)
        dispatcher = SyncDispatcher(orchestrator, workers=1)
        await dispatcher.start()

        dispatcher.dispatch(
            _lesson_event(
                student_id=student_id,
                course_id=enrollment.course_id,
                occurred_at=acted_at,
            )
        )
        await dispatcher.drain()
        await dispatcher.stop()

        snapshot = await snapshot_store.get_snapshot(student_id, enrollment.course_id)
        assert snapshot.last_activity_at == acted_at
        assert snapshot.updated_at > acted_at

    @pytest.mark.asyncio
    async def test_late_older_quiz_attempt_does_not_replace_newer(
        self, orchestrator, enroll, snapshot_store, student_id, clock
    ) -> None:
        enrollment = await enroll(student_id)
        lesson_id = uuid4()
        first_try = clock.now - timedelta(minutes=30)
        second_try = clock.now - timedelta(minutes=10)

        def quiz(score: float, occurred_at) -> QuizSubmittedEvent:
            return QuizSubmittedEvent(
                student_id=student_id,
                course_id=enrollment.course_id,
                lesson_id=lesson_id,
                score=score,
                max_score=10,
                passed=score >= 7,
                occurred_at=occurred_at,
            )

        dispatcher = SyncDispatcher(orchestrator, workers=1)
        await dispatcher.start()
        # Newer attempt is queued first
        dispatcher.dispatch(quiz(9, second_try))
        dispatcher.dispatch(quiz(4, first_try))
        await dispatcher.drain()
        await dispatcher.stop()

        snapshot = await snapshot_store.get_snapshot(student_id, enrollment.course_id)
        result = snapshot.quiz_results[lesson_id]
        assert result.score == 9
        assert result.attempted_at == second_try
        assert result.attempts == 2
        assert snapshot.last_activity_at == second_try
