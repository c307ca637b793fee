"""Tests for poll planning."""

from datetime import datetime, timedelta, timezone

import pytest

from slotwatch.heartbeat.civil_time import CivilTime
from slotwatch.heartbeat.models import PollReason, PollWindow
from slotwatch.heartbeat.poll_schedule import clamp_to_active_hours, next_anchor, next_poll


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestNextPoll:
    """Tests for next_poll."""

    def test_fallback_without_sessions(self, window, civil, now) -> None:
        """Test an empty state sleeps the maximum."""
        decision = next_poll(now, [], window, civil=civil)

        assert decision.reason == PollReason.FALLBACK
        assert decision.delay == timedelta(hours=window.max_sleep_hours)
        assert decision.next_anchor is None

    def test_fallback_clamped(self, window, civil) -> None:
        """Test a fallback landing at night moves to the morning."""
        now = _utc(2026, 2, 16, 20, 0)  # 3pm EST, +12h is 3am

        decision = next_poll(now, [], window, civil=civil)

        assert decision.reason == PollReason.FALLBACK
        assert decision.wake_at == _utc(2026, 2, 17, 11, 0)  # 6am EST
        assert decision.delay == timedelta(hours=15)

    def test_approach_normal_interval(self, make_state, window, civil, now) -> None:
        """Test a session within the approach window polls hourly."""
        decision = next_poll(now, [make_state()], window, civil=civil)

        assert decision.reason == PollReason.APPROACH
        assert decision.delay == timedelta(minutes=60)
        assert decision.next_anchor == _utc(2026, 2, 20, 11, 0)

    def test_approach_accelerated(self, make_state, window, civil, now) -> None:
        """Test a filling session polls on the short interval."""
        decision = next_poll(now, [make_state()], window, accelerated=True, civil=civil)

        assert decision.reason == PollReason.APPROACH
        assert decision.delay == timedelta(minutes=30)

    def test_approach_boundary_inclusive(self, make_state, window, civil) -> None:
        """Test the approach window opens exactly at anchor minus the window."""
        now = _utc(2026, 2, 16, 11, 0)  # Feb 20 11:00 UTC minus 96h

        decision = next_poll(now, [make_state()], window, civil=civil)

        assert decision.reason == PollReason.APPROACH

    def test_sleep_until_window(self, make_snapshot, make_state, window, civil) -> None:
        """Test a window opening within max sleep is slept until."""
        state = make_state(make_snapshot(day="2026-02-23"))
        now = _utc(2026, 2, 19, 4, 0)

        decision = next_poll(now, [state], window, civil=civil)

        assert decision.reason == PollReason.SLEEP
        assert decision.wake_at == _utc(2026, 2, 19, 11, 0)
        assert decision.delay == timedelta(hours=7)

    def test_fallback_when_window_is_far(
        self, make_snapshot, make_state, window, civil, now
    ) -> None:
        """Test a window opening beyond max sleep falls back."""
        state = make_state(make_snapshot(day="2026-02-23"))

        decision = next_poll(now, [state], window, civil=civil)

        assert decision.reason == PollReason.FALLBACK
        assert decision.delay == timedelta(hours=12)
        assert decision.next_anchor == _utc(2026, 2, 23, 11, 0)

    def test_approach_clamped_past_midnight(self, make_state, window, civil) -> None:
        """Test the clamp also applies inside the approach window."""
        now = _utc(2026, 2, 17, 4, 30)  # 11:30pm EST

        decision = next_poll(now, [make_state()], window, civil=civil)

        assert decision.reason == PollReason.APPROACH
        assert decision.wake_at == _utc(2026, 2, 17, 11, 0)

    def test_last_active_hour_kept(self, make_state, window, civil) -> None:
        """Test a wake during the final active hour is not moved."""
        now = _utc(2026, 2, 17, 3, 30)  # 10:30pm EST

        decision = next_poll(now, [make_state()], window, civil=civil)

        assert decision.wake_at == _utc(2026, 2, 17, 4, 30)

    def test_past_sessions_ignored(self, make_snapshot, make_state, window, civil, now) -> None:
        """Test sessions that already started do not drive the schedule."""
        state = make_state(make_snapshot(day="2026-02-16", start="06:00"))

        decision = next_poll(now, [state], window, civil=civil)

        assert decision.reason == PollReason.FALLBACK
        assert decision.next_anchor is None

    def test_default_civil_from_window(self, now) -> None:
        """Test the planner falls back to the window's timezone."""
        decision = next_poll(now, [], PollWindow(timezone="Europe/London"))
        local = decision.wake_at.astimezone(CivilTime("Europe/London").zone)
        assert 6 <= local.hour <= 23

    def test_delay_matches_wake(self, make_state, window, civil, now) -> None:
        """Test the delay is the distance from now to the wake time."""
        decision = next_poll(now, [make_state()], window, civil=civil)
        assert now + decision.delay == decision.wake_at
        assert decision.delay_seconds == 3600


class TestNextAnchor:
    """Tests for next_anchor."""

    def test_earliest_future(self, make_snapshot, make_state, now) -> None:
        """Test the soonest upcoming session is chosen."""
        states = [
            make_state(make_snapshot(day="2026-02-20")),
            make_state(make_snapshot(day="2026-02-18")),
            make_state(make_snapshot(day="2026-02-16")),
        ]
        assert next_anchor(states, now) == _utc(2026, 2, 18, 11, 0)

    def test_strictly_after_now(self, make_state) -> None:
        """Test a session starting exactly now is not upcoming."""
        state = make_state()
        assert next_anchor([state], state.snapshot.anchor_instant) is None


class TestClampToActiveHours:
    """Tests for the active-hours clamp."""

    def test_inside_kept(self, civil) -> None:
        """Test a target within active hours is unchanged."""
        target = _utc(2026, 2, 16, 15, 0)
        assert clamp_to_active_hours(target, 6, 23, civil) == target

    def test_early_moves_same_day(self, civil) -> None:
        """Test an early-morning target moves to the same day's start."""
        target = _utc(2026, 2, 16, 8, 0)  # 3am EST
        assert clamp_to_active_hours(target, 6, 23, civil) == _utc(2026, 2, 16, 11, 0)

    def test_late_moves_next_day(self, civil) -> None:
        """Test a target after the end hour moves to the next morning."""
        target = _utc(2026, 2, 17, 3, 0)  # 10pm EST
        assert clamp_to_active_hours(target, 6, 21, civil) == _utc(2026, 2, 17, 11, 0)

    def test_spring_forward(self, civil) -> None:
        """Test the clamp lands on 6am daylight time the morning clocks change."""
        target = _utc(2026, 3, 8, 7, 0)  # 3am EDT, just after the change
        assert clamp_to_active_hours(target, 6, 23, civil) == _utc(2026, 3, 8, 10, 0)

    def test_spring_forward_previous_night(self, civil) -> None:
        """Test a target just after midnight before the change uses the new offset."""
        target = _utc(2026, 3, 8, 5, 30)  # 12:30am EST
        assert clamp_to_active_hours(target, 6, 23, civil) == _utc(2026, 3, 8, 10, 0)

    def test_fall_back(self, civil) -> None:
        """Test the clamp lands on 6am standard time the morning clocks change."""
        target = _utc(2026, 11, 1, 7, 0)  # 2am EST
        assert clamp_to_active_hours(target, 6, 23, civil) == _utc(2026, 11, 1, 11, 0)

    def test_ambiguous_hour(self, civil) -> None:
        """Test both occurrences of 1am move to the same morning."""
        first = _utc(2026, 11, 1, 5, 30)  # 1:30am EDT
        second = _utc(2026, 11, 1, 6, 30)  # 1:30am EST
        expected = _utc(2026, 11, 1, 11, 0)

        assert clamp_to_active_hours(first, 6, 23, civil) == expected
        assert clamp_to_active_hours(second, 6, 23, civil) == expected


class TestActiveHoursProperty:
    """Wake times always fall inside active hours."""

    @pytest.mark.parametrize(
        "start",
        [
            _utc(2026, 2, 16, 0, 0),
            _utc(2026, 3, 6, 0, 0),
            _utc(2026, 10, 30, 0, 0),
        ],
    )
    def test_wake_hour_in_window(self, make_snapshot, make_state, civil, start) -> None:
        """Test every planned wake is within active hours across several days."""
        window = PollWindow(active_hour_start=7, active_hour_end=21)
        local_start = civil.to_civil(start).date()
        states = [
            make_state(make_snapshot(day=(local_start + timedelta(days=d)).isoformat()))
            for d in (1, 3, 6)
        ]

        for step in range(4 * 24 * 4):
            now = start + timedelta(minutes=15 * step)
            for accelerated in (False, True):
                decision = next_poll(now, states, window, accelerated=accelerated, civil=civil)
                local = civil.to_civil(decision.wake_at)
                assert 7 <= local.hour <= 21, (now, decision)
                assert decision.delay > timedelta(0)
