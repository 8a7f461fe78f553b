"""
Clock -- injectable source of current time.

Responsibility:
    Default lease windows (start = now, end = now + term), expiry checks,
    approval/review stamps and reconciliation timestamps all read time
    through a Clock handed to the service constructor.  Domain and engine
    code never call ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain -- pure, zero I/O except SystemClock, the one
    sanctioned boundary for wall-clock time.

Failure modes:
    - DeterministicClock.set_time raises ValueError for naive datetimes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        if time.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._now = time

    def advance(self, seconds: int = 0, *, days: int = 0) -> datetime:
        """Advance the clock and return the new time."""
        self._now = self._now + timedelta(days=days, seconds=seconds)
        return self._now
