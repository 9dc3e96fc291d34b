"""Course enrollment API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentUser
from src.sync.capture import EventCaptureDep
from src.sync.dependencies import authorize_student_access, handle_sync_error
from src.sync.exceptions import SyncError

from .dependencies import EnrollmentServiceDep, handle_enrollment_error
from .schemas import (
    EnrollmentActionResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    UpdateEnrollmentRequest,
)
from .service import EnrollmentError


router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


@router.post(
    "",
    response_model=EnrollmentActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in a course",
)
async def enroll(
    data: EnrollRequest,
    service: EnrollmentServiceDep,
    capture: EventCaptureDep,
    user: CurrentUser,
) -> EnrollmentActionResponse:
    """Enroll a student in a course and refresh their statistics."""
    student_id = capture.acting_student(data)
    authorize_student_access(user, student_id)

    try:
        enrollment = await service.enroll(
            student_id=student_id,
            course_id=data.course_id,
            lessons_total=data.lessons_total,
            duration_days=data.duration_days,
        )
    except EnrollmentError as e:
        raise handle_enrollment_error(e) from e
    except SyncError as e:
        raise handle_sync_error(e) from e

    response = EnrollmentActionResponse(
        enrollment=EnrollmentResponse.from_entity(enrollment)
    )
    capture.enrollment_changed(data, response)
    return response


@router.patch(
    "/{course_id}",
    response_model=EnrollmentActionResponse,
    summary="Change enrollment status",
)
async def update_enrollment(
    course_id: UUID,
    data: UpdateEnrollmentRequest,
    service: EnrollmentServiceDep,
    capture: EventCaptureDep,
    user: CurrentUser,
) -> EnrollmentActionResponse:
    """Pause, resume or complete an enrollment."""
    student_id = capture.acting_student(data)
    authorize_student_access(user, student_id)

    try:
        enrollment = await service.update_status(student_id, course_id, data.status)
    except EnrollmentError as e:
        raise handle_enrollment_error(e) from e
    except SyncError as e:
        raise handle_sync_error(e) from e

    response = EnrollmentActionResponse(
        enrollment=EnrollmentResponse.from_entity(enrollment)
    )
    capture.enrollment_changed(data, response)
    return response


@router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List enrollments",
)
async def list_enrollments(
    service: EnrollmentServiceDep,
    user: CurrentUser,
    student_id: UUID | None = Query(None, description="Student (teachers/admins)"),
) -> EnrollmentListResponse:
    """All enrollments of a student, any status."""
    target = student_id or user.id
    authorize_student_access(user, target)

    try:
        enrollments = await service.list_enrollments(target)
    except SyncError as e:
        raise handle_sync_error(e) from e

    items = [EnrollmentResponse.from_entity(e) for e in enrollments]
    return EnrollmentListResponse(items=items, total=len(items))
