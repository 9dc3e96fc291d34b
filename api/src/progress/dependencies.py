"""FastAPI dependencies for progress snapshots."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ProgressSnapshotStore


async def get_snapshot_store(request: Request) -> ProgressSnapshotStore:
    """Get progress snapshot store from app state."""
    store = getattr(request.app.state, "snapshot_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return store


# Type alias for dependency injection
SnapshotStoreDep = Annotated[ProgressSnapshotStore, Depends(get_snapshot_store)]
