"""
rankkeeper.engine.clock — Injectable Time Source
=================================================

Every component that needs "now" takes a :class:`Clock` instead of calling
``datetime.now`` directly, so tests can pin and advance time.

All timestamps are timezone-aware UTC.  :func:`as_utc` normalises values
read back from databases that drop tzinfo (SQLite returns naive datetimes
even for ``DateTime(timezone=True)`` columns).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

__all__ = ["Clock", "FixedClock", "SystemClock", "as_utc"]


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self._now = as_utc(start)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = as_utc(value)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by *delta* (or ``timedelta(**kwargs)``) and return the new time."""
        self._now = self._now + (delta if delta is not None else timedelta(**kwargs))
        return self._now
