"""Student progress module.

Provides:
- Per-course progress snapshots (completed lessons, quiz results, study time)
- Conditional-update store guaranteeing no lost updates per student+course
- Learning action endpoints feeding the sync engine
"""

from .models import PROGRESS_TABLES_CQL, ProgressSnapshot, QuizResult


__all__ = [
    "PROGRESS_TABLES_CQL",
    "ProgressSnapshot",
    "QuizResult",
]
