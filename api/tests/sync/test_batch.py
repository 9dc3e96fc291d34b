"""Tests for BatchCoordinator."""

import asyncio
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from src.sync.batch import MAX_BATCH_SIZE, BatchCoordinator
from src.sync.exceptions import (
    BatchLimitExceededError,
    InvalidInputError,
    StorageUnavailableError,
)
from src.sync.orchestrator import SyncOrchestrator


@pytest.fixture
def mock_orchestrator() -> Mock:
    orchestrator = Mock(spec=SyncOrchestrator)
    orchestrator.resync_student = AsyncMock(return_value=2)
    return orchestrator


class TestLimits:
    @pytest.mark.asyncio
    async def test_over_limit_rejected_without_store_access(
        self, orchestrator, fake_session
    ):
        coordinator = BatchCoordinator(orchestrator)
        ids = [uuid4() for _ in range(MAX_BATCH_SIZE + 1)]

        with pytest.raises(BatchLimitExceededError) as exc_info:
            await coordinator.batch_sync_students(ids)

        assert exc_info.value.code == "batch_limit_exceeded"
        assert exc_info.value.submitted == 101
        assert fake_session.executed == []

    @pytest.mark.asyncio
    async def test_exactly_limit_accepted(self, mock_orchestrator):
        coordinator = BatchCoordinator(mock_orchestrator)

        report = await coordinator.batch_sync_students(
            [uuid4() for _ in range(MAX_BATCH_SIZE)]
        )

        assert report.succeeded == MAX_BATCH_SIZE

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, mock_orchestrator):
        with pytest.raises(InvalidInputError):
            await BatchCoordinator(mock_orchestrator).batch_sync_students([])

    def test_configured_limit_cannot_exceed_hard_cap(self, mock_orchestrator):
        assert BatchCoordinator(mock_orchestrator, max_batch_size=500).max_batch_size == 100


class TestBatchSync:
    @pytest.mark.asyncio
    async def test_duplicates_processed_once(self, mock_orchestrator):
        first, second = uuid4(), uuid4()

        report = await BatchCoordinator(mock_orchestrator).batch_sync_students(
            [first, second, first]
        )

        assert report.requested == 3
        assert report.unique == 2
        assert [r.student_id for r in report.results] == [first, second]
        assert mock_orchestrator.resync_student.await_count == 2

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_going(self, mock_orchestrator):
        ids = [uuid4() for _ in range(4)]
        failing = ids[1]

        async def resync(student_id):
            if student_id == failing:
                raise StorageUnavailableError
            return 3

        mock_orchestrator.resync_student = AsyncMock(side_effect=resync)

        report = await BatchCoordinator(mock_orchestrator).batch_sync_students(ids)

        assert report.succeeded == 3
        assert report.failed == 1
        failed = report.results[1]
        assert failed.success is False
        assert failed.error_code == "storage_unavailable"
        assert report.results[0].courses_synced == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(self, mock_orchestrator):
        mock_orchestrator.resync_student = AsyncMock(side_effect=ValueError("bad row"))

        report = await BatchCoordinator(mock_orchestrator).batch_sync_students([uuid4()])

        assert report.results[0].error_code == "internal_error"
        assert report.results[0].error_message == "bad row"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, mock_orchestrator):
        in_flight = 0
        peak = 0

        async def resync(student_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return 1

        mock_orchestrator.resync_student = AsyncMock(side_effect=resync)

        report = await BatchCoordinator(
            mock_orchestrator, concurrency=3
        ).batch_sync_students([uuid4() for _ in range(20)])

        assert report.succeeded == 20
        assert peak == 3

    @pytest.mark.asyncio
    async def test_resync_publishes_through_real_orchestrator(
        self, orchestrator, enroll, student_id, mock_redis
    ):
        await enroll(student_id)

        report = await BatchCoordinator(orchestrator).batch_sync_students([student_id])

        assert report.results[0].success is True
        assert report.results[0].courses_synced == 1
        assert mock_redis.pipeline.return_value.execute.await_count == 2
