"""
Injectable time source for the stock kernel.

Services take every timestamp (started_at, counted_at, completed_at,
occurred_on, audit created_at) from a Clock passed in at construction.
``SystemClock`` is the only implementation that reads the wall clock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo

_DEFAULT_INSTANT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """
    Source of aware datetimes plus the business calendar date.

    ``today()`` is the date of ``now()`` in ``business_tz``, which is the
    date stamped on stock movements.  The warehouse may sit far from UTC.
    """

    business_tz: tzinfo = timezone.utc

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().astimezone(self.business_tz).date()


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def __init__(self, business_tz: tzinfo | None = None):
        if business_tz is not None:
            self.business_tz = business_tz

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Returns the same instant until moved with ``advance()``, ``tick()`` or
    ``set_time()``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or _DEFAULT_INSTANT

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        self.advance(1)
        return self._current


class SequentialClock(Clock):
    """Hands out the given instants in order, then keeps returning the last one."""

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._pending = list(times)

    def now(self) -> datetime:
        if len(self._pending) > 1:
            return self._pending.pop(0)
        return self._pending[0]
