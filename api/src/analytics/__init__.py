"""Progress analytics: expected pace and deviation classification.

Pure functions only; nothing here touches storage or reads the clock.
"""

from .deviation import (
    ON_TRACK_THRESHOLD_PCT,
    Deviation,
    DeviationLabel,
    DeviationResult,
    classify,
    compute_deviation,
)
from .pace import expected_progress


__all__ = [
    "ON_TRACK_THRESHOLD_PCT",
    "Deviation",
    "DeviationLabel",
    "DeviationResult",
    "classify",
    "compute_deviation",
    "expected_progress",
]
