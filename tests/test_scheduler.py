"""Tests for the poll wake timer."""

import asyncio
from datetime import timedelta

import pytest

from slotwatch.heartbeat.civil_time import utc_now
from slotwatch.heartbeat.cycle import CycleOutcome
from slotwatch.heartbeat.models import PollDecision, PollReason
from slotwatch.heartbeat.scheduler import RETRY_DELAY, PollScheduler


class _FakeCycle:
    """Cycle stand-in that counts runs and can be held open."""

    def __init__(self, wake_in: timedelta = timedelta(hours=1), fail: bool = False) -> None:
        self.wake_in = wake_in
        self.fail = fail
        self.runs = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.release.set()
        self.closed = False

    async def run(self) -> CycleOutcome:
        self.runs += 1
        self.started.set()
        await self.release.wait()
        if self.fail:
            raise RuntimeError("boom")

        now = utc_now()
        return CycleOutcome(
            started_at=now,
            decision=PollDecision(
                delay=self.wake_in,
                reason=PollReason.APPROACH,
                wake_at=now + self.wake_in,
            ),
        )

    async def close(self) -> None:
        self.closed = True


async def _wait_for_run(cycle: _FakeCycle) -> None:
    await asyncio.wait_for(cycle.started.wait(), timeout=5)
    # Let the job finish and re-arm
    for _ in range(10):
        await asyncio.sleep(0.01)


class TestPollScheduler:
    """Tests for PollScheduler."""

    @pytest.mark.asyncio
    async def test_runs_immediately_and_rearms(self) -> None:
        """Test the first cycle runs at start and the next wake is armed."""
        cycle = _FakeCycle()
        scheduler = PollScheduler(cycle)

        await scheduler.start()
        await _wait_for_run(cycle)

        assert scheduler.is_running
        assert cycle.runs == 1
        wake = scheduler.next_wake
        assert wake is not None
        assert wake > utc_now() + timedelta(minutes=55)

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_wake(self) -> None:
        """Test stopping removes the pending wake and closes the cycle."""
        cycle = _FakeCycle()
        scheduler = PollScheduler(cycle)
        await scheduler.start()
        await _wait_for_run(cycle)

        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.next_wake is None
        assert cycle.closed is True

    @pytest.mark.asyncio
    async def test_stop_waits_for_inflight_cycle(self) -> None:
        """Test a running cycle finishes and nothing is re-armed afterwards."""
        cycle = _FakeCycle()
        cycle.release.clear()
        scheduler = PollScheduler(cycle)
        await scheduler.start()
        await asyncio.wait_for(cycle.started.wait(), timeout=5)

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.05)
        assert not stopping.done()

        cycle.release.set()
        await asyncio.wait_for(stopping, timeout=5)

        assert cycle.runs == 1
        assert scheduler.next_wake is None
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_failed_cycle_retries(self) -> None:
        """Test a cycle that raises is retried after the retry delay."""
        cycle = _FakeCycle(fail=True)
        scheduler = PollScheduler(cycle)
        before = utc_now()

        await scheduler.start()
        await _wait_for_run(cycle)

        wake = scheduler.next_wake
        assert wake is not None
        assert wake >= before + RETRY_DELAY
        assert wake <= utc_now() + RETRY_DELAY

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_twice(self) -> None:
        """Test starting an already running scheduler is a no-op."""
        cycle = _FakeCycle()
        scheduler = PollScheduler(cycle)
        await scheduler.start()
        await scheduler.start()
        await _wait_for_run(cycle)

        assert cycle.runs == 1

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_before_start(self) -> None:
        """Test stopping a scheduler that never started does nothing."""
        cycle = _FakeCycle()
        await PollScheduler(cycle).stop()
        assert cycle.closed is False


def test_next_wake_without_scheduler() -> None:
    """No wake is reported before start."""
    assert PollScheduler(_FakeCycle()).next_wake is None  # type: ignore[arg-type]
