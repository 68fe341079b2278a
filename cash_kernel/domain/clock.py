"""
Clock -- Injectable time source.

Responsibility:
    Lets the session engine stamp ledger entries without calling
    ``datetime.now()`` directly, so tests and replays control time.

Architecture position:
    Kernel > Domain -- pure functional core.  SystemClock is the one
    sanctioned I/O boundary for time.

Failure modes:
    - ValueError for naive datetimes anywhere a clock accepts a time.
    - SequentialClock raises ValueError when built from an empty list.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware, got {value!r}")
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """
    Source of entry timestamps.

    ``now()`` returns an aware UTC datetime.  Monotonicity is not part of
    the contract: the session engine clamps a time that falls behind the
    tenant's last entry.
    """

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    """Wall clock, in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    The time only changes through ``set_time``, ``advance`` or ``tick``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_utc(
            fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        )

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Jump to ``time``; earlier than the current time is allowed."""
        self._current = _as_utc(time)

    def advance(self, seconds: float = 1) -> None:
        """Move by ``seconds``; negative values move backwards."""
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """One second forward; returns the new time."""
        self.advance(1)
        return self._current


class SequentialClock(Clock):
    """
    Replays a scripted list of times, one per ``now()`` call, then keeps
    returning the last one.  Lets a test make the clock jump backwards
    between two specific commands.
    """

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._script = [_as_utc(t) for t in times]
        self._calls = 0

    def now(self) -> datetime:
        index = min(self._calls, len(self._script) - 1)
        self._calls += 1
        return self._script[index]
