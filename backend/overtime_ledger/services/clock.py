from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of "now" for the engine."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""
        ...

    def today(self) -> date:
        """Return the current calendar date."""
        ...


class SystemClock:
    """Wall-clock implementation in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock frozen at a given instant, settable for tests and backfills."""

    def __init__(self, at: datetime) -> None:
        self._at = at if at.tzinfo is not None else at.replace(tzinfo=UTC)

    def set(self, at: datetime) -> None:
        self._at = at if at.tzinfo is not None else at.replace(tzinfo=UTC)

    def now(self) -> datetime:
        return self._at

    def today(self) -> date:
        return self._at.date()


_clock: Clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency for the engine clock."""
    return _clock


def set_clock(clock: Clock) -> None:
    """Override the clock (for testing or backfills)."""
    global _clock
    _clock = clock
