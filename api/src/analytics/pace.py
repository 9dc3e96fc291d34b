"""Pace model: how far along a student is expected to be in a course.

Expected progress grows linearly from 0 at enrollment to 1 when the declared
course duration has elapsed. A course without a declared duration is due
immediately.
"""

from datetime import datetime, timedelta

from src.enrollments.models import ensure_utc_aware


_ONE_DAY = timedelta(days=1)


def elapsed_days(enrolled_at: datetime, now: datetime) -> float:
    """Fractional days since enrollment, clamped at 0 for future dates."""
    start = ensure_utc_aware(enrolled_at)
    end = ensure_utc_aware(now)
    return max(0.0, (end - start) / _ONE_DAY)


def expected_progress(
    enrolled_at: datetime,
    now: datetime,
    duration_days: int | float | None,
) -> float:
    """Expected completed fraction of a course, always within [0, 1].

    Args:
        enrolled_at: Enrollment start (naive values are read as UTC)
        now: Evaluation time
        duration_days: Declared course length; None or <= 0 means "no deadline"

    Returns:
        min(1, elapsed / duration_days), or 1.0 without a positive duration

    Examples:
        >>> from datetime import UTC, datetime, timedelta
        >>> start = datetime(2024, 1, 1, tzinfo=UTC)
        >>> expected_progress(start, start + timedelta(days=30), 60)
        0.5
        >>> expected_progress(start, start - timedelta(days=3), 60)
        0.0
        >>> expected_progress(start, start, None)
        1.0
    """
    if not duration_days or duration_days <= 0:
        return 1.0
    return min(1.0, elapsed_days(enrolled_at, now) / duration_days)
