"""Injectable clocks for day-boundary decisions."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Interface for the current time."""

    def now(self) -> datetime:
        """Timezone-aware current time."""
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """
    Manually advanced clock for deterministic tests and replays.

    Naive datetimes are treated as UTC.
    """

    def __init__(self, start: datetime):
        self._now = ensure_aware(start)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_aware(moment)

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


def ensure_aware(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def local_day(moment: datetime, zone: tzinfo | str = UTC) -> date:
    """Calendar day of a timestamp in the given timezone."""
    if isinstance(zone, str):
        zone = UTC if zone.upper() == "UTC" else ZoneInfo(zone)
    return ensure_aware(moment).astimezone(zone).date()
