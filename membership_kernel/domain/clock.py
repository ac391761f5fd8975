"""
Clock -- injected time for the lifecycle engine.

Responsibility:
    Supplies "now" (audit timestamps) and "today" (which transitions are in
    effect) to the engine, the recalculator and the stores.  Nothing in the
    kernel reads the wall clock except SystemClock.

Architecture position:
    Kernel > Domain -- pure.  SystemClock is the only I/O it contains.

Invariants enforced:
    (none directly -- DERIVED_STATUS depends on "today", so it is only
    reproducible with an injected clock)
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone, tzinfo


class Clock(ABC):
    """
    Source of the current instant and the current business date.

    ``now()`` is always timezone-aware.  ``today()`` is the date of ``now()``
    in the clock's business timezone, which is the date effective dates are
    compared against.
    """

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """
    Wall-clock time.

    ``business_tz`` is the club's local timezone.  A transition effective
    "today" in Berlin takes effect at local midnight, not at UTC midnight.
    """

    def __init__(self, business_tz: tzinfo = timezone.utc):
        self.business_tz = business_tz

    def now(self) -> datetime:
        return datetime.now(self.business_tz)


class DeterministicClock(Clock):
    """Test clock that only moves when told to."""

    DEFAULT_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or self.DEFAULT_TIME

    def now(self) -> datetime:
        return self._current

    def set_today(self, day: date) -> None:
        """Jump to noon on ``day``, keeping the clock's timezone."""
        self._current = datetime.combine(day, time(12, 0), tzinfo=self._current.tzinfo)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)
