"""
Clock -- injectable source of the current time.

Order creation and edit timestamps, goods receipt dates, payment and return
dates, document-number years and the overdue cut-off all come from a
``Clock`` passed to ``PurchaseOrderService``.  Nothing in the engine calls
``datetime.now()`` directly, so tests pin time with ``DeterministicClock``.

All times are timezone-aware UTC; naive datetimes are rejected.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Naive datetime not allowed: {value!r}")
    return value.astimezone(UTC)


class Clock(ABC):
    """Returns the current UTC time."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """UTC calendar date of ``now()``."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock frozen at a given instant until moved explicitly.

    Usage::

        clock = DeterministicClock(datetime(2024, 3, 15, 9, 30, tzinfo=UTC))
        clock.advance(3600)            # one hour later
        clock.set_time(datetime(2025, 1, 2, tzinfo=UTC))  # new numbering year
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _require_aware(fixed_time or self.DEFAULT_START)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _require_aware(time)

    def advance(self, seconds: float | timedelta = 1) -> None:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        if step < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._current += step

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        self.advance(1)
        return self._current
