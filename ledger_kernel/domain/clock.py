"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` or ``date.today()``.  Movement
    timestamps, payment timestamps and default void dates all come from the
    Clock a service was built with, so a test or a replay can pin them.

Architecture position:
    Kernel > Domain.  SystemClock is the only place the kernel reads the
    wall clock.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, time, timedelta

# Noon keeps a pinned business date from shifting across timezones
_BUSINESS_HOUR = time(12, 0, tzinfo=UTC)


class Clock(ABC):
    """now() is timezone-aware UTC; today() is its calendar date."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Test clock.

    Returns the same instant on every call unless built with ``step``, in
    which case each call returns the current instant and then moves forward
    by ``step`` (useful when rows are ordered by timestamp).
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None, step: timedelta | None = None):
        self._current = start or self.DEFAULT_START
        self._step = step

    def now(self) -> datetime:
        current = self._current
        if self._step:
            self._current += self._step
        return current

    def move_to(self, when: date | datetime) -> None:
        """Pin the clock to an instant, or to noon UTC of a business date."""
        if not isinstance(when, datetime):
            when = datetime.combine(when, _BUSINESS_HOUR)
        self._current = when

    def advance(self, delta: timedelta) -> None:
        self._current += delta
