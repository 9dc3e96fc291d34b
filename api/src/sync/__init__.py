"""Progress sync engine.

Provides:
- Sync orchestrator (snapshot updates + aggregate refresh)
- Event capture layer and background dispatcher
- Batch coordinator for maintenance resyncs
"""

from .exceptions import (
    BatchLimitExceededError,
    InvalidInputError,
    NotFoundError,
    StorageUnavailableError,
    SyncError,
)


__all__ = [
    "BatchLimitExceededError",
    "InvalidInputError",
    "NotFoundError",
    "StorageUnavailableError",
    "SyncError",
]
