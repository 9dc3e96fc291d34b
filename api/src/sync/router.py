"""Dashboard and sync maintenance API endpoints.

Provides routes for:
- Real-time dashboard (read path, recomputed from snapshots on every call)
- Enrollment statistics
- Admin batch resync and dispatcher health
"""

from uuid import UUID

from fastapi import APIRouter, Query

from src.auth.dependencies import AdminUser, CurrentUser

from .dependencies import (
    BatchCoordinatorDep,
    SyncDispatcherDep,
    SyncOrchestratorDep,
    authorize_student_access,
    handle_sync_error,
)
from .exceptions import SyncError
from .schemas import (
    BatchSyncReport,
    BatchSyncRequest,
    DashboardSummary,
    DispatcherStats,
    EnrollmentStatistics,
)


dashboard_router = APIRouter(prefix="/v1/dashboard", tags=["dashboard"])
admin_router = APIRouter(prefix="/v1/admin/sync", tags=["admin", "sync"])


# ==============================================================================
# Dashboard Endpoints
# ==============================================================================


@dashboard_router.get(
    "/realtime",
    response_model=DashboardSummary,
    summary="Real-time dashboard",
)
async def get_realtime_dashboard(
    orchestrator: SyncOrchestratorDep,
    user: CurrentUser,
    student_id: UUID | None = Query(None, description="Student (teachers/admins)"),
) -> DashboardSummary:
    """Progress, pace deviation and study time of every active course.

    Returns 503 when storage is unavailable so the client can retry.
    """
    target = student_id or user.id
    authorize_student_access(user, target)

    try:
        return await orchestrator.get_real_time_dashboard_data(target)
    except SyncError as e:
        raise handle_sync_error(e) from e


@dashboard_router.get(
    "/statistics",
    response_model=EnrollmentStatistics,
    summary="Enrollment statistics",
)
async def get_enrollment_statistics(
    orchestrator: SyncOrchestratorDep,
    user: CurrentUser,
    student_id: UUID | None = Query(None, description="Student (teachers/admins)"),
) -> EnrollmentStatistics:
    """Enrollment counts and totals across all courses of a student."""
    target = student_id or user.id
    authorize_student_access(user, target)

    try:
        return await orchestrator.compute_enrollment_statistics(target)
    except SyncError as e:
        raise handle_sync_error(e) from e


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.post(
    "/batch",
    response_model=BatchSyncReport,
    summary="Batch resync students",
)
async def batch_sync_students(
    data: BatchSyncRequest,
    coordinator: BatchCoordinatorDep,
    _admin: AdminUser,
) -> BatchSyncReport:
    """Recompute aggregates for up to 100 students.

    Per-student failures are reported in the body; the request itself
    succeeds unless the input is rejected.
    """
    try:
        return await coordinator.batch_sync_students(data.student_ids)
    except SyncError as e:
        raise handle_sync_error(e) from e


@admin_router.get(
    "/health",
    response_model=DispatcherStats,
    summary="Sync dispatcher stats",
)
async def get_dispatcher_stats(
    dispatcher: SyncDispatcherDep,
    _admin: AdminUser,
) -> DispatcherStats:
    """Queue depth and processed/failed/dropped counters."""
    return dispatcher.get_stats()
