"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings
from src.core.database import AsyncCassandraConnection
from src.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports the backing services the sync engine needs.

    The app stays ready without Redis; dashboards are then only served
    on demand instead of being pushed.
    """
    settings = get_settings()
    dispatcher = getattr(request.app.state, "sync_dispatcher", None)
    return {
        "status": "ready",
        "environment": settings.environment,
        "debug": settings.debug,
        "database": AsyncCassandraConnection.is_connected(),
        "redis": get_redis() is not None,
        "sync_running": bool(dispatcher and dispatcher.is_running),
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
