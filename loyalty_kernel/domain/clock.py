"""
Clock -- injectable time source.

Responsibility:
    Services that compare against promotion windows, event end times or
    throttle windows receive a Clock instead of calling ``datetime.now()``,
    so tests can pin and move time.

Architecture position:
    Kernel > Domain -- pure, zero I/O except SystemClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._time = time

    def advance(self, seconds: float = 0, **delta_kwargs: float) -> datetime:
        """Move the clock forward and return the new time.

        Accepts seconds positionally plus any ``timedelta`` keyword
        (minutes=, hours=, days=).
        """
        self._time = self._time + timedelta(seconds=seconds, **delta_kwargs)
        return self._time
