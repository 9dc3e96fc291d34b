"""Student progress API endpoints.

Provides routes for:
- Learning actions (lesson completion, quiz submission), accepted with 202
  and synced in the background
- Progress snapshot and pace deviation queries
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from src.auth.dependencies import CurrentUser
from src.enrollments.dependencies import EnrollmentServiceDep, handle_enrollment_error
from src.enrollments.service import EnrollmentService, NotEnrolledError
from src.sync.capture import EventCaptureDep
from src.sync.dependencies import (
    SyncOrchestratorDep,
    authorize_student_access,
    handle_sync_error,
)
from src.sync.exceptions import SyncError
from src.sync.models import LearningAction
from src.sync.schemas import DeviationResponse

from .dependencies import SnapshotStoreDep
from .schemas import (
    LearningActionResponse,
    LessonCompletionRequest,
    ProgressSnapshotResponse,
    QuizSubmissionRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Access Validation Helper
# ==============================================================================


async def ensure_enrolled(
    enrollment_service: EnrollmentService,
    student_id: UUID,
    course_id: UUID,
) -> None:
    """Reject learning actions for courses the student is not enrolled in.

    Raises:
        HTTPException 404: Not enrolled
        HTTPException 503: Storage unavailable
    """
    try:
        enrollment = await enrollment_service.get_enrollment(student_id, course_id)
    except SyncError as e:
        raise handle_sync_error(e) from e
    if enrollment is None:
        raise handle_enrollment_error(NotEnrolledError())


# ==============================================================================
# Learning Action Endpoints
# ==============================================================================


@router.post(
    "/lessons/complete",
    response_model=LearningActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Complete a lesson",
)
async def complete_lesson(
    data: LessonCompletionRequest,
    capture: EventCaptureDep,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> LearningActionResponse:
    """Record a lesson completion.

    Progress, dashboard and pace deviation are updated after the response
    is sent. Completing the same lesson again only adds study time.
    """
    student_id = capture.acting_student(data)
    authorize_student_access(user, student_id)
    await ensure_enrolled(enrollment_service, student_id, data.course_id)

    response = LearningActionResponse(
        action=LearningAction.LESSON_COMPLETED.value,
        student_id=student_id,
        course_id=data.course_id,
        lesson_id=data.lesson_id,
        accepted_at=datetime.now(UTC),
    )
    capture.lesson_completed(data, response)
    return response


@router.post(
    "/quizzes/submit",
    response_model=LearningActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a quiz result",
)
async def submit_quiz(
    data: QuizSubmissionRequest,
    capture: EventCaptureDep,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> LearningActionResponse:
    """Record a quiz attempt; only the latest attempt per lesson is kept."""
    student_id = capture.acting_student(data)
    authorize_student_access(user, student_id)
    await ensure_enrolled(enrollment_service, student_id, data.course_id)

    response = LearningActionResponse(
        action=LearningAction.QUIZ_SUBMITTED.value,
        student_id=student_id,
        course_id=data.course_id,
        lesson_id=data.lesson_id,
        accepted_at=datetime.now(UTC),
    )
    capture.quiz_submitted(data, response)
    return response


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/courses/{course_id}",
    response_model=ProgressSnapshotResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    store: SnapshotStoreDep,
    user: CurrentUser,
    student_id: UUID | None = Query(None, description="Student (teachers/admins)"),
) -> ProgressSnapshotResponse:
    """Current progress snapshot of a course."""
    target = student_id or user.id
    authorize_student_access(user, target)

    try:
        snapshot = await store.get_snapshot(target, course_id)
    except SyncError as e:
        raise handle_sync_error(e) from e

    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No progress recorded for this course",
        )
    return ProgressSnapshotResponse.from_entity(snapshot)


@router.get(
    "/courses/{course_id}/deviation",
    response_model=DeviationResponse,
    summary="Get pace deviation",
)
async def get_course_deviation(
    course_id: UUID,
    orchestrator: SyncOrchestratorDep,
    user: CurrentUser,
    student_id: UUID | None = Query(None, description="Student (teachers/admins)"),
) -> DeviationResponse:
    """Actual vs expected progress and the ahead/on-track/behind label."""
    target = student_id or user.id
    authorize_student_access(user, target)

    try:
        result = await orchestrator.get_course_deviation(target, course_id)
    except SyncError as e:
        raise handle_sync_error(e) from e
    return DeviationResponse.from_result(result)
