"""
Heartbeat Models

Data models for session snapshots, persisted per-session state, alerts,
and the policy objects the evaluator and poll planner consume.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_ACTION_URL_TEMPLATE = (
    "https://apps.daysmartrecreation.com/dash/x/#/online/extremeice/"
    "event-registration?date={date}&facility_ids=1"
)


class AlertClass(str, Enum):
    """Alert classes, declared from highest to lowest severity."""

    SATURATED = "saturated"  # Just filled up
    REOPENED = "reopened"  # Was full, spots opened up
    URGENT = "urgent"  # Few spots left
    VIABLE = "viable"  # Enough people signed up to be worth going

    @property
    def label(self) -> str:
        return _ALERT_LABELS[self]

    @property
    def emoji(self) -> str:
        return _ALERT_EMOJI[self]


_ALERT_LABELS = {
    AlertClass.SATURATED: "SOLD OUT",
    AlertClass.REOPENED: "NEWLY AVAILABLE",
    AlertClass.URGENT: "FILLING FAST",
    AlertClass.VIABLE: "OPPORTUNITY",
}

_ALERT_EMOJI = {
    AlertClass.SATURATED: "🚫",
    AlertClass.REOPENED: "✅",
    AlertClass.URGENT: "⚡",
    AlertClass.VIABLE: "🏒",
}


class UserResponse(str, Enum):
    """How the user answered an alert for a session."""

    NONE = "none"
    ACCEPTED = "accepted"  # Signed up
    DECLINED = "declined"  # Not interested
    SNOOZED = "snoozed"  # Remind me later


class PollReason(str, Enum):
    """Why the poll planner picked its wake time."""

    APPROACH = "approach"  # Inside a session's approach window
    SLEEP = "sleep"  # Sleeping until the next approach window opens
    FALLBACK = "fallback"  # Nothing close, capped at max sleep


class _Record(BaseModel):
    """Immutable record serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ResourceSnapshot(_Record):
    """One observation of a session during the current cycle."""

    session_date: date
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    anchor_instant: AwareDatetime

    primary_count: int = Field(ge=0)
    primary_max: int = Field(ge=0)
    secondary_count: int = Field(ge=0)
    secondary_max: int = Field(ge=0)

    # Presentation only
    day_of_week: str | None = None
    time_label: str | None = None
    event_name: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resource_id(self) -> str:
        return f"{self.session_date.isoformat()}:{self.start_time}"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_saturated(self) -> bool:
        return self.primary_count >= self.primary_max

    @property
    def remaining(self) -> int:
        """Primary spots still open."""
        return self.primary_max - self.primary_count

    @property
    def weekday_name(self) -> str:
        return self.day_of_week or f"{self.session_date:%A}"


class PersistedState(_Record):
    """
    Everything remembered about a session between cycles.

    Alert bookkeeping is written by the evaluator. The user response fields
    are written only by the interaction side and are read-only to the
    evaluator.
    """

    snapshot: ResourceSnapshot

    last_alert_class: AlertClass | None = None
    last_alert_at: AwareDatetime | None = None
    last_primary_count_at_alert: int | None = None

    user_response: UserResponse = UserResponse.NONE
    user_responded_at: AwareDatetime | None = None
    snooze_until: AwareDatetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        """Map the old boolean registration flag onto the response field."""
        if isinstance(data, dict) and "userResponse" not in data and "user_response" not in data:
            if data.get("isRegistered"):
                data = {**data, "userResponse": UserResponse.ACCEPTED.value}
        return data

    @model_validator(mode="after")
    def _check_invariants(self) -> "PersistedState":
        if self.last_alert_class is not None and self.last_alert_at is None:
            raise ValueError("lastAlertClass requires lastAlertAt")
        if self.snooze_until is not None and self.user_response != UserResponse.SNOOZED:
            raise ValueError("snoozeUntil is only valid for a snoozed response")
        return self

    @property
    def resource_id(self) -> str:
        return self.snapshot.resource_id


class Alert(BaseModel):
    """A notification for one session, ready for any sink to deliver."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    alert_class: AlertClass = Field(alias="class")
    resource_id: str
    snapshot: ResourceSnapshot
    message: str
    action_url: str

    @property
    def title(self) -> str:
        return f"{self.alert_class.emoji} {self.alert_class.label}"


class AlertPolicy(BaseModel):
    """Thresholds that decide when a session is worth an alert."""

    model_config = ConfigDict(frozen=True)

    urgent_threshold: int = 4
    min_secondary: int = 1
    min_primary_registered: int = 10
    viable_re_alert_delta: int = 2
    action_url_template: str = DEFAULT_ACTION_URL_TEMPLATE


class PollWindow(BaseModel):
    """Cadence and active-hours settings for the poll planner."""

    model_config = ConfigDict(frozen=True)

    normal_interval_minutes: int = 60
    accelerated_interval_minutes: int = 30
    approach_window_hours: float = 96
    max_sleep_hours: float = 12
    active_hour_start: int = 6
    active_hour_end: int = 23
    timezone: str = "America/New_York"


class PollDecision(BaseModel):
    """When to poll next, and why."""

    model_config = ConfigDict(frozen=True)

    delay: timedelta
    reason: PollReason
    wake_at: datetime
    next_anchor: datetime | None = None

    @property
    def delay_seconds(self) -> float:
        return self.delay.total_seconds()
