"""Shared fixtures: in-memory Cassandra, wired sync engine and an API client."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_REQUESTS", "false")

from collections.abc import Callable  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock, Mock  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.auth.permissions import UserRole  # noqa: E402
from src.auth.security import create_access_token  # noqa: E402
from src.enrollments.service import EnrollmentService  # noqa: E402
from src.main import create_app  # noqa: E402
from src.progress.service import ProgressSnapshotStore  # noqa: E402
from src.sync.batch import BatchCoordinator  # noqa: E402
from src.sync.dispatcher import SyncDispatcher  # noqa: E402
from src.sync.orchestrator import SyncOrchestrator  # noqa: E402
from src.sync.publisher import DashboardPublisher  # noqa: E402
from tests.fakes import FakeCassandraSession  # noqa: E402


ENROLLED_AT = datetime(2024, 1, 1, tzinfo=UTC)


class FixedClock:
    """Settable clock injected into the orchestrator."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def fake_session() -> FakeCassandraSession:
    return FakeCassandraSession()


@pytest.fixture
def enrollment_service(fake_session: FakeCassandraSession) -> EnrollmentService:
    return EnrollmentService(session=fake_session, keyspace="test_keyspace")


@pytest.fixture
def snapshot_store(fake_session: FakeCassandraSession) -> ProgressSnapshotStore:
    return ProgressSnapshotStore(
        session=fake_session, keyspace="test_keyspace", retry_backoff_seconds=0
    )


@pytest.fixture
def clock() -> FixedClock:
    """Day 30 of a course started on ENROLLED_AT."""
    return FixedClock(ENROLLED_AT + timedelta(days=30))


@pytest.fixture
def mock_redis() -> Mock:
    """Mock Redis client with a pipeline."""
    redis_mock = Mock()
    pipe = Mock()
    pipe.setex = Mock()
    pipe.publish = Mock()
    pipe.execute = AsyncMock(return_value=[True, 1])
    redis_mock.pipeline = Mock(return_value=pipe)
    return redis_mock


@pytest.fixture
def publisher(mock_redis: Mock) -> DashboardPublisher:
    return DashboardPublisher(mock_redis, ttl_seconds=60)


@pytest.fixture
def orchestrator(
    snapshot_store: ProgressSnapshotStore,
    enrollment_service: EnrollmentService,
    publisher: DashboardPublisher,
    clock: FixedClock,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        store=snapshot_store,
        enrollments=enrollment_service,
        publisher=publisher,
        clock=clock,
    )


@pytest.fixture
def student_id() -> UUID:
    return uuid4()


@pytest.fixture
def enroll(
    enrollment_service: EnrollmentService,
) -> Callable:
    """Enroll a student in a 60-day, 24-lesson course starting ENROLLED_AT."""

    async def _enroll(student_id: UUID, course_id: UUID | None = None, **kwargs):
        values = {
            "lessons_total": 24,
            "duration_days": 60,
            "enrolled_at": ENROLLED_AT,
            **kwargs,
        }
        return await enrollment_service.enroll(
            student_id, course_id or uuid4(), **values
        )

    return _enroll


# ==============================================================================
# API client
# ==============================================================================


def auth_headers(user_id: UUID, role: UserRole = UserRole.STUDENT) -> dict[str, str]:
    token = create_access_token(
        {"sub": str(user_id), "email": "student@example.com", "role": role.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(
    fake_session: FakeCassandraSession,
    enrollment_service: EnrollmentService,
    snapshot_store: ProgressSnapshotStore,
    orchestrator: SyncOrchestrator,
):
    """App wired to the in-memory session; lifespan is not run."""
    application = create_app()
    application.state.enrollment_service = enrollment_service
    application.state.snapshot_store = snapshot_store
    application.state.sync_orchestrator = orchestrator
    application.state.sync_dispatcher = SyncDispatcher(orchestrator, workers=1)
    application.state.batch_coordinator = BatchCoordinator(orchestrator)
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
