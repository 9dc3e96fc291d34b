"""Deviation classifier: compare actual completion against the expected pace."""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from src.enrollments.models import Enrollment

from .pace import elapsed_days, expected_progress


# Percentage points of deviation at which a course counts as ahead/behind.
# Reaching the threshold exactly already flips the label.
ON_TRACK_THRESHOLD_PCT = 5


class DeviationLabel(str, Enum):
    """Three-way pace label shown on the dashboard."""

    AHEAD = "ahead"
    ON_TRACK = "on_track"
    BEHIND = "behind"


@dataclass(frozen=True)
class Deviation:
    deviation_pct: int
    label: DeviationLabel


@dataclass(frozen=True)
class DeviationResult:
    """Deviation of one enrollment, derived fresh on every read."""

    actual_progress: float
    expected_progress: float
    deviation_pct: int
    label: DeviationLabel
    days_elapsed: int
    duration_days: int | None


def _to_decimal(value: float) -> Decimal:
    # str() keeps the shortest repr, so 0.625 stays exactly 0.625
    return Decimal(str(value))


def deviation_pct(actual: float, expected: float) -> int:
    """(actual - expected) * 100 rounded half away from zero.

    >>> deviation_pct(0.625, 0.5)
    13
    >>> deviation_pct(0.25, 0.5)
    -25
    """
    raw = (_to_decimal(actual) - _to_decimal(expected)) * 100
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def classify(
    actual: float,
    expected: float,
    threshold: int = ON_TRACK_THRESHOLD_PCT,
) -> Deviation:
    """Map actual/expected fractions to a deviation and a label.

    Ahead when the deviation is >= +threshold, Behind when <= -threshold,
    On track otherwise.
    """
    pct = deviation_pct(actual, expected)
    if pct >= threshold:
        label = DeviationLabel.AHEAD
    elif pct <= -threshold:
        label = DeviationLabel.BEHIND
    else:
        label = DeviationLabel.ON_TRACK
    return Deviation(deviation_pct=pct, label=label)


def actual_progress(lessons_completed: int, lessons_total: int) -> float:
    """Completed fraction clamped to [0, 1]; 0 for courses without lessons."""
    if lessons_total <= 0:
        return 0.0
    return min(1.0, max(0.0, lessons_completed / lessons_total))


def compute_deviation(
    enrollment: Enrollment,
    lessons_completed: int,
    now: datetime,
    threshold: int = ON_TRACK_THRESHOLD_PCT,
) -> DeviationResult:
    """Build the DeviationResult of an enrollment at ``now``."""
    actual = actual_progress(lessons_completed, enrollment.lessons_total)
    expected = expected_progress(enrollment.enrolled_at, now, enrollment.duration_days)
    deviation = classify(actual, expected, threshold)
    return DeviationResult(
        actual_progress=actual,
        expected_progress=expected,
        deviation_pct=deviation.deviation_pct,
        label=deviation.label,
        days_elapsed=math.floor(elapsed_days(enrollment.enrolled_at, now)),
        duration_days=enrollment.duration_days,
    )
