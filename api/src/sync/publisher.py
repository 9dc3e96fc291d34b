"""Publishes recomputed dashboard aggregates to Redis.

Aggregates are cached under a per-student key (so a dashboard can render the
last known value) and announced on a per-student channel for live clients.
Nothing here is authoritative: the values are always recomputed from
snapshots and enrollments before being published.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson
import structlog

from src.core.redis import (
    dashboard_channel,
    dashboard_summary_key,
    enrollment_stats_key,
)


if TYPE_CHECKING:
    from redis.asyncio import Redis

    from .schemas import DashboardSummary, EnrollmentStatistics


logger = structlog.get_logger(__name__)


class DashboardPublisher:
    """Cache + pub/sub sink for dashboard aggregates."""

    def __init__(self, redis: Redis | None, ttl_seconds: int = 300) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def publish_dashboard(self, summary: DashboardSummary) -> bool:
        """Cache and announce a dashboard summary.

        Returns:
            False when Redis is not configured

        Raises:
            redis.RedisError: On connection or command failure
        """
        return await self._publish(
            dashboard_summary_key(str(summary.student_id)),
            str(summary.student_id),
            "dashboard_summary",
            summary.model_dump(mode="json"),
        )

    async def publish_statistics(self, statistics: EnrollmentStatistics) -> bool:
        """Cache and announce enrollment statistics."""
        return await self._publish(
            enrollment_stats_key(str(statistics.student_id)),
            str(statistics.student_id),
            "enrollment_statistics",
            statistics.model_dump(mode="json"),
        )

    async def _publish(
        self, key: str, student_id: str, kind: str, payload: dict[str, Any]
    ) -> bool:
        if self.redis is None:
            return False

        pipe = self.redis.pipeline()
        pipe.setex(key, self.ttl_seconds, orjson.dumps(payload))
        pipe.publish(
            dashboard_channel(student_id),
            orjson.dumps({"type": kind, "data": payload}),
        )
        await pipe.execute()

        logger.debug("dashboard_aggregate_published", kind=kind, student_id=student_id)
        return True
