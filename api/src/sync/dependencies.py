"""FastAPI dependencies for the sync engine.

Provides dependency injection for:
- Orchestrator, dispatcher and batch coordinator (from app state)
- Error mapping to HTTP responses
- Acting-on-behalf-of-student authorization
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from src.auth.permissions import can_act_for_others
from src.auth.schemas import AuthenticatedUser

from .batch import BatchCoordinator
from .dispatcher import SyncDispatcher
from .exceptions import SyncError
from .orchestrator import SyncOrchestrator


def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not available",
        )
    return service


async def get_sync_orchestrator(request: Request) -> SyncOrchestrator:
    return _from_state(request, "sync_orchestrator", "Sync service")


async def get_sync_dispatcher(request: Request) -> SyncDispatcher:
    return _from_state(request, "sync_dispatcher", "Sync dispatcher")


async def get_batch_coordinator(request: Request) -> BatchCoordinator:
    return _from_state(request, "batch_coordinator", "Batch sync")


# Type aliases for dependency injection
SyncOrchestratorDep = Annotated[SyncOrchestrator, Depends(get_sync_orchestrator)]
SyncDispatcherDep = Annotated[SyncDispatcher, Depends(get_sync_dispatcher)]
BatchCoordinatorDep = Annotated[BatchCoordinator, Depends(get_batch_coordinator)]


def handle_sync_error(error: SyncError) -> HTTPException:
    """Convert sync errors to HTTP exceptions."""
    status_map = {
        "not_found": status.HTTP_404_NOT_FOUND,
        "invalid_input": status.HTTP_400_BAD_REQUEST,
        "batch_limit_exceeded": 413,
        "storage_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = {"Retry-After": "5"} if status_code == 503 else None

    return HTTPException(status_code=status_code, detail=error.message, headers=headers)


def authorize_student_access(user: AuthenticatedUser, student_id: UUID) -> None:
    """Students may only act for themselves; teachers and admins for anyone.

    Raises:
        HTTPException 403: Acting for another student without permission
    """
    if student_id != user.id and not can_act_for_others(user.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to act for another student",
        )
