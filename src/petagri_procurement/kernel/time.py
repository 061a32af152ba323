"""
Injectable clock

Offering deadlines and delivery schedules depend on "now"; injecting the
clock keeps those rules deterministic under test.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Source of the current UTC time"""

    def now(self) -> datetime:
        ...


class RealTimeProvider:
    """System clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Manually driven clock for tests

    Time only moves when the test moves it, so event timestamps and
    deadline checks are reproducible.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = initial_time or datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    def advance(self, **delta: float) -> datetime:
        """Move the clock forward, e.g. ``advance(minutes=5)``"""
        self._current_time += timedelta(**delta)
        return self._current_time


def today(time_provider: TimeProvider) -> date:
    """Calendar date (UTC) of the provider's current time"""
    return time_provider.now().astimezone(timezone.utc).date()
