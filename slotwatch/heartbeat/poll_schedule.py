"""
Poll Planning

Decides when the next cycle should run. Polls are frequent only while a
session's approach window is open; otherwise the process sleeps until the
window opens, never longer than the configured maximum, and never wakes
outside active hours in the reference timezone.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from slotwatch.heartbeat.civil_time import CivilTime, ensure_utc
from slotwatch.heartbeat.models import PersistedState, PollDecision, PollReason, PollWindow


def next_anchor(states: Iterable[PersistedState], now: datetime) -> datetime | None:
    """Earliest session start strictly after ``now``, or None."""
    now = ensure_utc(now)
    upcoming = [s.snapshot.anchor_instant for s in states if s.snapshot.anchor_instant > now]
    return min(upcoming, default=None)


def clamp_to_active_hours(
    target: datetime,
    start_hour: int,
    end_hour: int,
    civil: CivilTime,
) -> datetime:
    """
    Push a wake time into active hours.

    A target whose local hour is within ``[start_hour, end_hour]`` is kept.
    Earlier in the day moves to ``start_hour`` the same day; later moves to
    ``start_hour`` the following day.
    """
    local = civil.to_civil(target)
    if start_hour <= local.hour <= end_hour:
        return target

    day = local.date()
    if local.hour > end_hour:
        day += timedelta(days=1)
    return civil.start_of_hour(day, start_hour)


def next_poll(
    now: datetime,
    states: Iterable[PersistedState],
    window: PollWindow,
    accelerated: bool = False,
    civil: CivilTime | None = None,
) -> PollDecision:
    """
    Compute the delay until the next poll.

    Args:
        now: Current instant
        states: Tracked sessions
        window: Cadence and active-hours settings
        accelerated: Use the short interval while inside an approach window
        civil: Timezone view; defaults to ``window.timezone``

    Returns:
        PollDecision with the delay, the reason, and the wake instant
    """
    now = ensure_utc(now)
    civil = civil or CivilTime(window.timezone)
    max_wake = now + timedelta(hours=window.max_sleep_hours)

    anchor = next_anchor(states, now)
    if anchor is None:
        reason, target = PollReason.FALLBACK, max_wake
    else:
        approach_open = anchor - timedelta(hours=window.approach_window_hours)
        if now >= approach_open:
            minutes = (
                window.accelerated_interval_minutes
                if accelerated
                else window.normal_interval_minutes
            )
            reason, target = PollReason.APPROACH, now + timedelta(minutes=minutes)
        elif approach_open > max_wake:
            reason, target = PollReason.FALLBACK, max_wake
        else:
            reason, target = PollReason.SLEEP, approach_open

    wake_at = clamp_to_active_hours(
        target, window.active_hour_start, window.active_hour_end, civil
    )
    return PollDecision(
        delay=wake_at - now,
        reason=reason,
        wake_at=wake_at,
        next_anchor=anchor,
    )
