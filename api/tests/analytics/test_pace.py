"""Tests for the pace model."""

from datetime import UTC, datetime, timedelta

import pytest

from src.analytics.pace import elapsed_days, expected_progress


START = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class TestElapsedDays:
    def test_fractional_days(self) -> None:
        assert elapsed_days(START, START + timedelta(hours=36)) == 1.5

    def test_future_enrollment_clamps_to_zero(self) -> None:
        assert elapsed_days(START, START - timedelta(days=2)) == 0.0

    def test_naive_datetimes_are_read_as_utc(self) -> None:
        naive = START.replace(tzinfo=None)
        assert elapsed_days(naive, START + timedelta(days=3)) == 3.0


class TestExpectedProgress:
    def test_halfway(self) -> None:
        assert expected_progress(START, START + timedelta(days=30), 60) == 0.5

    def test_at_enrollment(self) -> None:
        assert expected_progress(START, START, 60) == 0.0

    def test_capped_after_duration(self) -> None:
        assert expected_progress(START, START + timedelta(days=400), 60) == 1.0

    def test_enrollment_in_the_future(self) -> None:
        assert expected_progress(START, START - timedelta(days=10), 60) == 0.0

    @pytest.mark.parametrize("duration", [None, 0, -5])
    def test_without_positive_duration_course_is_due(self, duration) -> None:
        assert expected_progress(START, START + timedelta(days=1), duration) == 1.0

    def test_monotonic_in_time(self) -> None:
        values = [
            expected_progress(START, START + timedelta(days=d), 45)
            for d in range(0, 60, 3)
        ]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)
