"""
Civil Time

Converts between absolute UTC instants and wall-clock time in the
reference timezone. Everything that reasons about "6am local" or
"tomorrow" goes through CivilTime so tests can pin the zone and the clock.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable
from zoneinfo import ZoneInfo

# A clock returns the current instant as an aware UTC datetime
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant in UTC."""
    return datetime.now(timezone.utc)


def fixed_clock(instant: datetime) -> Clock:
    """Build a clock that always returns the same instant."""
    pinned = ensure_utc(instant)
    return lambda: pinned


def ensure_utc(instant: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class CivilTime:
    """
    Wall-clock view of a single IANA timezone.

    Offsets are resolved per instant, so seasonal changes are applied at
    the instant being converted rather than at "now".
    """

    def __init__(self, tz: str | ZoneInfo = "America/New_York") -> None:
        self.zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)

    @property
    def name(self) -> str:
        return self.zone.key

    def to_civil(self, instant: datetime) -> datetime:
        """Convert an absolute instant to local wall-clock time."""
        return ensure_utc(instant).astimezone(self.zone)

    def to_instant(self, day: date, at: time) -> datetime:
        """
        Convert a local date and time to an absolute UTC instant.

        A wall-clock time skipped by a forward transition resolves with the
        pre-transition offset, i.e. it lands just after the gap. An
        ambiguous time resolves to its first occurrence.
        """
        local = datetime.combine(day, at.replace(tzinfo=None), tzinfo=self.zone)
        return local.astimezone(timezone.utc)

    def parse(self, day: str, at: str) -> datetime:
        """Convert ``YYYY-MM-DD`` and ``HH:MM`` strings to a UTC instant."""
        return self.to_instant(date.fromisoformat(day), time.fromisoformat(at))

    def today(self, now: datetime) -> date:
        """Local calendar date at the given instant."""
        return self.to_civil(now).date()

    def start_of_hour(self, day: date, hour: int) -> datetime:
        """Instant at which ``hour:00`` begins on a local date."""
        return self.to_instant(day, time(hour=hour))

    def describe(self, instant: datetime) -> str:
        """Human-readable local time for logs, e.g. ``Wed, Feb 25, 7:30 PM EST``."""
        local = self.to_civil(instant)
        hour = local.hour % 12 or 12
        period = "AM" if local.hour < 12 else "PM"
        return f"{local:%a, %b} {local.day}, {hour}:{local:%M} {period} {local:%Z}"


def format_day(day: date) -> str:
    """Short month/day label, e.g. ``Feb 20``."""
    return f"{day:%b} {day.day}"


def format_clock(at: str) -> str:
    """Convert ``HH:MM`` to a compact 12-hour label, e.g. ``6:00am``."""
    parsed = time.fromisoformat(at)
    period = "pm" if parsed.hour >= 12 else "am"
    hour = parsed.hour % 12 or 12
    return f"{hour}:{parsed.minute:02d}{period}"
