"""Event capture layer.

Route handlers for learning actions end with an explicit call such as::

    response = LearningActionResponse(success=True)
    capture.lesson_completed(data, response)
    return response

Capture only acts on successful responses. It extracts the minimal facts,
builds a sync event and schedules it as a Starlette background task, which
runs after the response has been sent. The task only enqueues the event on
the SyncDispatcher, so nothing the sync does can delay or alter the response.

This is also the one place that decides who the acting student is: an
explicit ``student_id`` (or legacy ``user_id``) field wins, otherwise the
authenticated session identity is used.
"""

from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import BackgroundTasks, Depends, Request

from src.auth.dependencies import current_user_id

from .dispatcher import SyncDispatcher
from .models import (
    EnrollmentChangedEvent,
    LearningAction,
    LessonCompletedEvent,
    QuizSubmittedEvent,
    SyncEvent,
)


logger = structlog.get_logger(__name__)


class EventCapture:
    """Per-request hook turning successful learning actions into sync events."""

    def __init__(
        self,
        request: Request,
        background_tasks: BackgroundTasks,
        dispatcher: SyncDispatcher | None,
    ) -> None:
        self.request = request
        self.background_tasks = background_tasks
        self.dispatcher = dispatcher

    def acting_student(self, payload: Any) -> UUID | None:
        """Student the action is about: explicit field first, then session."""
        explicit = getattr(payload, "student_id", None) or getattr(
            payload, "user_id", None
        )
        return explicit or current_user_id(self.request)

    def lesson_completed(self, payload: Any, response: Any) -> bool:
        """Capture a lesson completion. Returns True if a sync was scheduled."""
        action = LearningAction.LESSON_COMPLETED
        if not self._succeeded(response):
            return False

        student_id = self.acting_student(payload)
        course_id = getattr(payload, "course_id", None)
        lesson_id = getattr(payload, "lesson_id", None)
        if not (student_id and course_id and lesson_id):
            return self._skip(action)

        return self._schedule(
            LessonCompletedEvent(
                student_id=student_id,
                request_id=self._request_id(),
                course_id=course_id,
                module_id=getattr(payload, "module_id", None),
                lesson_id=lesson_id,
                time_spent_minutes=getattr(payload, "time_spent_minutes", 0) or 0,
            )
        )

    def quiz_submitted(self, payload: Any, response: Any) -> bool:
        """Capture a quiz submission. Returns True if a sync was scheduled."""
        action = LearningAction.QUIZ_SUBMITTED
        if not self._succeeded(response):
            return False

        student_id = self.acting_student(payload)
        course_id = getattr(payload, "course_id", None)
        lesson_id = getattr(payload, "lesson_id", None)
        score = getattr(payload, "score", None)
        max_score = getattr(payload, "max_score", None)
        if not (student_id and course_id and lesson_id) or None in (score, max_score):
            return self._skip(action)

        return self._schedule(
            QuizSubmittedEvent(
                student_id=student_id,
                request_id=self._request_id(),
                course_id=course_id,
                lesson_id=lesson_id,
                score=score,
                max_score=max_score,
                time_spent_minutes=getattr(payload, "time_spent_minutes", 0) or 0,
                passed=bool(getattr(payload, "passed", False)),
            )
        )

    def enrollment_changed(self, payload: Any, response: Any) -> bool:
        """Capture an enrollment change. Returns True if a sync was scheduled."""
        action = LearningAction.ENROLLMENT_CHANGED
        if not self._succeeded(response):
            return False

        student_id = self.acting_student(payload)
        if not student_id:
            return self._skip(action)

        return self._schedule(
            EnrollmentChangedEvent(
                student_id=student_id,
                request_id=self._request_id(),
                course_id=getattr(payload, "course_id", None),
            )
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @staticmethod
    def _succeeded(response: Any) -> bool:
        return bool(getattr(response, "success", False))

    def _request_id(self) -> str | None:
        return getattr(self.request.state, "request_id", None)

    def _skip(self, action: LearningAction) -> bool:
        logger.debug("sync_capture_skipped", action=action.value, reason="missing_facts")
        return False

    def _schedule(self, event: SyncEvent) -> bool:
        if self.dispatcher is None:
            logger.warning(
                "sync_dispatcher_unavailable",
                action=event.action.value,
                student_id=str(event.student_id),
            )
            return False
        self.background_tasks.add_task(self._dispatch, event)
        return True

    async def _dispatch(self, event: SyncEvent) -> None:
        # Runs after the response is sent, on the event loop (asyncio.Queue
        # must not be touched from the threadpool used for sync callables).
        if self.dispatcher.dispatch(event):
            logger.debug(
                "sync_event_dispatched",
                action=event.action.value,
                student_id=str(event.student_id),
            )


async def get_event_capture(
    request: Request, background_tasks: BackgroundTasks
) -> EventCapture:
    """Build the capture hook for the current request."""
    return EventCapture(
        request,
        background_tasks,
        getattr(request.app.state, "sync_dispatcher", None),
    )


EventCaptureDep = Annotated[EventCapture, Depends(get_event_capture)]
