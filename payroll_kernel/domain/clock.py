"""
Injectable time source.

Approval timestamps, audit timestamps and the payroll-policy rule
"effective_date must be after today" all read time through a ``Clock`` so
tests can pin it.  ``SystemClock`` is the only place the kernel reads the
wall clock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Audit queries order entries by timestamp, so tests that need a stable
    order call ``tick()`` between mutations.
    """

    DEFAULT_START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._now = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._now

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._now = moment.astimezone(timezone.utc)

    def tick(self, seconds: int = 1) -> datetime:
        """Move forward ``seconds`` and return the new time."""
        self._now += timedelta(seconds=seconds)
        return self._now
