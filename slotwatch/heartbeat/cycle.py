"""
Poll Cycle

One fetch, evaluate, deliver, save and plan pass.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from slotwatch.heartbeat.alerts import AlertRouter, build_router
from slotwatch.heartbeat.civil_time import CivilTime, Clock, ensure_utc, utc_now
from slotwatch.heartbeat.errors import SourceError, StateWriteError
from slotwatch.heartbeat.evaluator import evaluate, filling_fast
from slotwatch.heartbeat.models import (
    Alert,
    AlertPolicy,
    PersistedState,
    PollDecision,
    PollWindow,
)
from slotwatch.heartbeat.poll_schedule import next_poll
from slotwatch.heartbeat.store import (
    StateStore,
    carry_user_responses,
    drop_elapsed,
    merge_states,
    prune,
)

if TYPE_CHECKING:
    from slotwatch.config import Settings
    from slotwatch.sources.base import SnapshotSource

logger = structlog.get_logger(__name__)


class CycleOutcome(BaseModel):
    """Result of a single poll cycle."""

    started_at: datetime
    alerts: list[Alert] = Field(default_factory=list)
    states: list[PersistedState] = Field(default_factory=list)
    decision: PollDecision
    failed_sinks: dict[str, list[str]] = Field(default_factory=dict)
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None


class PollCycle:
    """
    Runs poll cycles against one source, store and router.

    A source failure skips evaluation and delivery for the cycle; a state
    write failure is recorded after alerts were already delivered. In both
    cases the next poll is still planned.
    """

    def __init__(
        self,
        store: StateStore,
        source: SnapshotSource,
        router: AlertRouter,
        policy: AlertPolicy,
        window: PollWindow,
        civil: CivilTime | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize the cycle.

        Args:
            store: State file
            source: Where snapshots come from
            router: Alert delivery
            policy: Alert thresholds
            window: Poll cadence
            civil: Reference timezone; defaults to ``window.timezone``
            clock: Source of "now" when a cycle is not given one
        """
        self.store = store
        self.source = source
        self.router = router
        self.policy = policy
        self.window = window
        self.civil = civil or CivilTime(window.timezone)
        self._clock = clock

    async def run(self, now: datetime | None = None) -> CycleOutcome:
        """Run one cycle and plan the next."""
        now = ensure_utc(now or self._clock())
        start_time = time.monotonic()
        error: str | None = None

        loaded = self.store.load()
        states = drop_elapsed(prune(loaded, self.civil.today(now)), now)
        if len(states) != len(loaded):
            logger.debug("Pruned sessions", removed=len(loaded) - len(states))

        alerts: list[Alert] = []
        failed_sinks: dict[str, list[str]] = {}

        try:
            snapshots = await self.source.fetch(now)
        except SourceError as e:
            logger.error("Fetch failed", source=self.source.name, error=str(e))
            error = str(e)
        else:
            alerts, updates = evaluate(snapshots, states, self.policy, now)
            states = merge_states(states, updates)

            if alerts:
                failed_sinks = await self.router.deliver(alerts)

            # Responses recorded while this cycle ran win over the copy loaded at start
            states = carry_user_responses(states, self.store.load())
            try:
                self.store.save(states)
            except StateWriteError as e:
                error = str(e)

        decision = next_poll(
            now,
            states,
            self.window,
            accelerated=filling_fast(states, self.policy, now),
            civil=self.civil,
        )

        duration = time.monotonic() - start_time
        logger.info(
            "Cycle completed",
            sessions=len(states),
            alerts=len(alerts),
            error=error,
            duration=f"{duration:.2f}s",
        )
        logger.info(
            "Next poll scheduled",
            reason=decision.reason.value,
            wake_at=self.civil.describe(decision.wake_at),
            delay_minutes=round(decision.delay_seconds / 60, 1),
        )

        return CycleOutcome(
            started_at=now,
            alerts=alerts,
            states=states,
            decision=decision,
            failed_sinks=failed_sinks,
            error=error,
            duration_seconds=duration,
        )

    async def close(self) -> None:
        """Release the source's and sinks' connections."""
        await self.source.close()
        await self.router.close()


def build_cycle(settings: Settings) -> PollCycle:
    """Wire a cycle from application settings."""
    from slotwatch.sources.dash import DashSource

    civil = CivilTime(settings.timezone)
    return PollCycle(
        store=StateStore(settings.state_path),
        source=DashSource.from_settings(settings, civil),
        router=build_router(settings),
        policy=settings.policy,
        window=settings.poll_window,
        civil=civil,
    )
