"""
Alert Evaluation

Turns this cycle's session snapshots into at most one alert per session.

Rules are an ordered decision list: the first rule that matches decides
the outcome for a session, either an alert class or "no alert". Higher
severity classes sit earlier in the list, and the suppression checks keep
a session from stepping back down to a lower class without a real change
in attendance.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

import structlog
from pydantic import ValidationError

from slotwatch.heartbeat.civil_time import ensure_utc, format_clock, format_day
from slotwatch.heartbeat.models import (
    Alert,
    AlertClass,
    AlertPolicy,
    PersistedState,
    ResourceSnapshot,
    UserResponse,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _Candidate:
    """Inputs for deciding a single session."""

    snapshot: ResourceSnapshot
    prior: PersistedState | None
    policy: AlertPolicy
    now: datetime

    @property
    def last_class(self) -> AlertClass | None:
        return self.prior.last_alert_class if self.prior else None

    @property
    def count_at_last_alert(self) -> int:
        if self.prior is None or self.prior.last_primary_count_at_alert is None:
            return 0
        return self.prior.last_primary_count_at_alert


Rule = Callable[[_Candidate], bool]


def _became_saturated(c: _Candidate) -> bool:
    return (
        c.prior is not None
        and c.snapshot.is_saturated
        and not c.prior.snapshot.is_saturated
    )


def _reopened(c: _Candidate) -> bool:
    return (
        c.prior is not None
        and not c.snapshot.is_saturated
        and c.prior.snapshot.is_saturated
    )


def _user_settled(c: _Candidate) -> bool:
    """Accepted or declined sessions are silent for the rest of their life."""
    return c.prior is not None and c.prior.user_response in (
        UserResponse.ACCEPTED,
        UserResponse.DECLINED,
    )


def _snoozed(c: _Candidate) -> bool:
    """An unexpired snooze silences the session; an expired one is ignored."""
    if c.prior is None or c.prior.user_response != UserResponse.SNOOZED:
        return False
    if c.prior.snooze_until is None:
        return False
    return c.now < c.prior.snooze_until


def _saturated(c: _Candidate) -> bool:
    return c.snapshot.is_saturated


def _urgent(c: _Candidate) -> bool:
    if c.snapshot.remaining > c.policy.urgent_threshold:
        return False

    # Never downgrade: after Urgent, Reopened or Saturated, only more
    # sign-ups justify another Urgent alert
    if c.last_class in (AlertClass.URGENT, AlertClass.REOPENED, AlertClass.SATURATED):
        return c.snapshot.primary_count > c.count_at_last_alert
    return True


def _viable(c: _Candidate) -> bool:
    snapshot = c.snapshot
    if snapshot.secondary_count < c.policy.min_secondary:
        return False
    if snapshot.primary_count < c.policy.min_primary_registered:
        return False

    if c.last_class in (AlertClass.URGENT, AlertClass.REOPENED, AlertClass.SATURATED):
        return False
    if c.last_class == AlertClass.VIABLE:
        previous_remaining = snapshot.primary_max - c.count_at_last_alert
        return previous_remaining - snapshot.remaining >= c.policy.viable_re_alert_delta
    return True


# Evaluated top-down; the first matching rule decides. None means "stop,
# no alert".
DECISION_LIST: tuple[tuple[Rule, AlertClass | None], ...] = (
    (_became_saturated, AlertClass.SATURATED),
    (_reopened, AlertClass.REOPENED),
    (_user_settled, None),
    (_snoozed, None),
    (_saturated, None),
    (_urgent, AlertClass.URGENT),
    (_viable, AlertClass.VIABLE),
)


def decide(
    snapshot: ResourceSnapshot,
    prior: PersistedState | None,
    policy: AlertPolicy,
    now: datetime,
) -> AlertClass | None:
    """
    Decide which alert, if any, a single session gets this cycle.

    Sessions that have already started never alert.
    """
    now = ensure_utc(now)
    if snapshot.anchor_instant <= now:
        return None

    candidate = _Candidate(snapshot=snapshot, prior=prior, policy=policy, now=now)
    for rule, outcome in DECISION_LIST:
        if rule(candidate):
            return outcome
    return None


def evaluate(
    snapshots: Iterable[ResourceSnapshot | Mapping[str, Any]],
    prior_states: Sequence[PersistedState],
    policy: AlertPolicy,
    now: datetime,
) -> tuple[list[Alert], list[PersistedState]]:
    """
    Evaluate one cycle.

    Args:
        snapshots: Current observations, in any order. Raw mappings are
            validated here; one that fails is skipped for this cycle.
        prior_states: State saved at the end of the previous cycle
        policy: Alert thresholds
        now: The cycle's reference instant

    Returns:
        Alerts sorted soonest session first, and the new state for every
        valid snapshot. Sessions not observed (or skipped) this cycle are
        not included; callers merge these over the prior state.
    """
    now = ensure_utc(now)
    prior_by_id = {state.resource_id: state for state in prior_states}

    # A session observed twice keeps its last observation
    latest: dict[str, ResourceSnapshot] = {}
    for raw in snapshots:
        snapshot = _coerce_snapshot(raw)
        if snapshot is not None:
            latest[snapshot.resource_id] = snapshot

    alerts: list[Alert] = []
    next_states: list[PersistedState] = []

    for resource_id, snapshot in latest.items():
        prior = prior_by_id.get(resource_id)
        fired = decide(snapshot, prior, policy, now)

        if fired is not None:
            alerts.append(build_alert(fired, snapshot, policy))
            logger.info(
                "Alert raised",
                resource_id=resource_id,
                alert_class=fired.value,
                primary=f"{snapshot.primary_count}/{snapshot.primary_max}",
            )

        next_states.append(_advance(prior, snapshot, fired, now))

    alerts.sort(key=lambda a: (a.snapshot.anchor_instant, a.resource_id))
    return alerts, next_states


def filling_fast(
    states: Iterable[PersistedState],
    policy: AlertPolicy,
    now: datetime,
) -> bool:
    """True when any upcoming, open session is within the urgent threshold."""
    now = ensure_utc(now)
    return any(
        s.snapshot.anchor_instant > now
        and not s.snapshot.is_saturated
        and s.snapshot.remaining <= policy.urgent_threshold
        for s in states
    )


def _coerce_snapshot(raw: ResourceSnapshot | Mapping[str, Any]) -> ResourceSnapshot | None:
    if isinstance(raw, ResourceSnapshot):
        return raw
    try:
        return ResourceSnapshot.model_validate(raw)
    except ValidationError as e:
        logger.warning("Skipping malformed snapshot", error_count=e.error_count(), error=str(e))
        return None


def _advance(
    prior: PersistedState | None,
    snapshot: ResourceSnapshot,
    fired: AlertClass | None,
    now: datetime,
) -> PersistedState:
    """Carry a session's state into the next cycle."""
    if prior is None:
        prior = PersistedState(snapshot=snapshot)

    update: dict[str, Any] = {"snapshot": snapshot}
    if fired is not None:
        update.update(
            last_alert_class=fired,
            last_alert_at=now,
            last_primary_count_at_alert=snapshot.primary_count,
        )
    return prior.model_copy(update=update)


def build_alert(
    alert_class: AlertClass,
    snapshot: ResourceSnapshot,
    policy: AlertPolicy,
) -> Alert:
    """Render a self-contained alert for a session."""
    return Alert(
        alert_class=alert_class,
        resource_id=snapshot.resource_id,
        snapshot=snapshot,
        message=_build_message(alert_class, snapshot),
        action_url=policy.action_url_template.format(date=snapshot.session_date.isoformat()),
    )


def _build_message(alert_class: AlertClass, snapshot: ResourceSnapshot) -> str:
    heading = (
        f"{alert_class.emoji} {alert_class.label}: {snapshot.weekday_name} "
        f"{format_day(snapshot.session_date)}, {format_clock(snapshot.start_time)}"
    )
    remaining = snapshot.remaining

    if alert_class == AlertClass.SATURATED:
        return f"{heading}\nSession is now full."
    if alert_class == AlertClass.REOPENED:
        return f"{heading}\nSpots opened up! {remaining} {_spots(remaining)} available."

    status = "Act now!" if alert_class == AlertClass.URGENT else "Worth signing up!"
    return (
        f"{heading}\n"
        f"Players: {snapshot.primary_count}/{snapshot.primary_max} "
        f"({remaining} {_spots(remaining)} left)\n"
        f"Goalies: {snapshot.secondary_count}/{snapshot.secondary_max}\n"
        f"Status: {status}"
    )


def _spots(n: int) -> str:
    return "spot" if n == 1 else "spots"
