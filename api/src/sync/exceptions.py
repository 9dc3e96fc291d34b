"""Error taxonomy for the progress sync engine.

Each error carries a stable ``code`` that the HTTP layer maps to a status
(see ``src.sync.dependencies.handle_sync_error``).
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from cassandra import OperationTimedOut, RequestExecutionException
from cassandra.cluster import NoHostAvailable


logger = structlog.get_logger(__name__)


class SyncError(Exception):
    """Base sync engine error."""

    def __init__(self, message: str, code: str = "sync_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(SyncError):
    """Snapshot or enrollment absent."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class StorageUnavailableError(SyncError):
    """Transient data store failure (unreachable, timed out, contended)."""

    def __init__(self, message: str = "Progress storage unavailable"):
        super().__init__(message, "storage_unavailable")


class InvalidInputError(SyncError):
    """Missing or malformed identifiers, rejected before any store access."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, "invalid_input")


class BatchLimitExceededError(SyncError):
    """Too many student ids submitted to a single batch resync."""

    def __init__(self, submitted: int, limit: int):
        self.submitted = submitted
        self.limit = limit
        super().__init__(
            f"Batch accepts at most {limit} student ids, got {submitted}",
            "batch_limit_exceeded",
        )


# Driver failures that mean "try again later". Unavailable, ReadTimeout and
# WriteTimeout all derive from RequestExecutionException.
STORAGE_ERRORS = (RequestExecutionException, OperationTimedOut, NoHostAvailable)


@contextmanager
def storage_errors(operation: str, **context: object) -> Iterator[None]:
    """Translate Cassandra driver failures into StorageUnavailableError."""
    try:
        yield
    except STORAGE_ERRORS as e:
        logger.warning(
            "storage_operation_failed",
            operation=operation,
            error_type=type(e).__name__,
            error=str(e),
            **{key: str(value) for key, value in context.items()},
        )
        raise StorageUnavailableError(f"{operation} failed: {type(e).__name__}") from e
