"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()``: reversal
timestamps come from ``now()`` and aging reports default their as-of date
to ``today()``.  Tests pass a ``DeterministicClock`` and move it by hand.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

_EPOCH = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` is always timezone-aware UTC; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    Naive datetimes are refused so a test cannot stamp a reversal with a
    local wall-clock time by accident.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _aware(fixed_time or _EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _aware(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"clock time must be timezone-aware, got {value!r}")
    return value.astimezone(timezone.utc)
