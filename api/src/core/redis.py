# ruff: noqa: PLW0603
"""Redis connection management.

Redis is optional: it only carries published dashboard aggregates
(cache keys + pub/sub). The API keeps working when it is unreachable.
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool and verify it with a ping."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


def get_redis() -> redis.Redis | None:
    """Get Redis client instance."""
    return _redis_client


# Key and channel naming
def dashboard_summary_key(student_id: str) -> str:
    return f"dashboard:summary:{student_id}"


def enrollment_stats_key(student_id: str) -> str:
    return f"dashboard:stats:{student_id}"


def dashboard_channel(student_id: str) -> str:
    """Per-student channel that receives refreshed dashboard aggregates."""
    return f"dashboard:user:{student_id}"
