"""
Tests for the clock abstraction.
"""

from datetime import datetime, timedelta, timezone

import pytest

from tenancy_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_now_is_stable(self):
        clock = DeterministicClock(datetime(2025, 6, 1, tzinfo=timezone.utc))
        assert clock.now() == clock.now()

    def test_advance(self):
        start = datetime(2025, 6, 1, tzinfo=timezone.utc)
        clock = DeterministicClock(start)

        assert clock.advance(30) == start + timedelta(seconds=30)
        assert clock.advance(days=2) == start + timedelta(days=2, seconds=30)

    def test_set_time(self):
        clock = DeterministicClock()
        target = datetime(2030, 1, 1, tzinfo=timezone.utc)

        clock.set_time(target)

        assert clock.now() == target

    def test_naive_datetimes_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2025, 1, 1))
        with pytest.raises(ValueError):
            DeterministicClock().set_time(datetime(2025, 1, 1))


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo == timezone.utc
