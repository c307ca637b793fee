"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from slotwatch.heartbeat.civil_time import CivilTime
from slotwatch.heartbeat.models import (
    AlertPolicy,
    PersistedState,
    PollWindow,
    ResourceSnapshot,
)
from slotwatch.sources.base import SnapshotSource

SnapshotFactory = Callable[..., ResourceSnapshot]
StateFactory = Callable[..., PersistedState]


@pytest.fixture
def civil() -> CivilTime:
    """Reference timezone used throughout the tests."""
    return CivilTime("America/New_York")


@pytest.fixture
def now() -> datetime:
    """Fixed cycle instant: Monday Feb 16 2026, 10:00 EST."""
    return datetime(2026, 2, 16, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def policy() -> AlertPolicy:
    """Default alert thresholds."""
    return AlertPolicy()


@pytest.fixture
def window() -> PollWindow:
    """Default poll cadence."""
    return PollWindow()


@pytest.fixture
def make_snapshot(civil: CivilTime) -> SnapshotFactory:
    """Build a session snapshot; the anchor follows the local date and time."""

    def _make(
        day: str = "2026-02-20",
        start: str = "06:00",
        primary: int = 12,
        primary_max: int = 24,
        secondary: int = 2,
        secondary_max: int = 3,
        **extra: Any,
    ) -> ResourceSnapshot:
        return ResourceSnapshot(
            session_date=day,
            start_time=start,
            anchor_instant=civil.parse(day, start),
            primary_count=primary,
            primary_max=primary_max,
            secondary_count=secondary,
            secondary_max=secondary_max,
            **extra,
        )

    return _make


@pytest.fixture
def make_state(make_snapshot: SnapshotFactory, now: datetime) -> StateFactory:
    """Build a persisted state around a snapshot."""

    def _make(snapshot: ResourceSnapshot | None = None, **fields: Any) -> PersistedState:
        if fields.get("last_alert_class") is not None:
            fields.setdefault("last_alert_at", now)
        return PersistedState(snapshot=snapshot or make_snapshot(), **fields)

    return _make


class FakeSource(SnapshotSource):
    """Source returning canned snapshots, or raising a canned error."""

    name = "fake"

    def __init__(
        self,
        snapshots: list[ResourceSnapshot] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.snapshots = snapshots or []
        self.error = error
        self.fetch_count = 0
        self.closed = False

    async def fetch(self, now: datetime) -> list[ResourceSnapshot]:
        self.fetch_count += 1
        if self.error is not None:
            raise self.error
        return list(self.snapshots)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_source() -> Callable[..., FakeSource]:
    """Build a fake snapshot source."""
    return FakeSource
