"""Slotwatch Configuration."""

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from slotwatch.heartbeat.models import DEFAULT_ACTION_URL_TEMPLATE, AlertPolicy, PollWindow


class Settings(BaseSettings):
    """
    Settings for the session tracker.

    Read from ``SLOTWATCH_*`` environment variables (or a ``.env`` file).
    Invalid values fail at construction, before any cycle runs.
    """

    model_config = SettingsConfigDict(
        env_prefix="SLOTWATCH_",
        env_file=".env",
        extra="ignore",
    )

    # Alert thresholds
    urgent_threshold: int = Field(default=4, ge=0)
    min_secondary: int = Field(default=1, ge=0)
    min_primary_registered: int = Field(default=10, ge=0)
    viable_re_alert_delta: int = Field(default=2, ge=1)

    # Poll cadence
    normal_interval_minutes: int = Field(default=60, gt=0)
    accelerated_interval_minutes: int = Field(default=30, gt=0)
    approach_window_hours: float = Field(default=96, gt=0)
    max_sleep_hours: float = Field(default=12, gt=0)
    active_hour_start: int = Field(default=6, ge=0, le=23)
    active_hour_end: int = Field(default=23, ge=0, le=23)
    timezone: str = "America/New_York"

    # Storage
    state_path: Path = Path("data/state.json")

    # Upstream source
    source_base_url: str = "https://apps.daysmartrecreation.com"
    source_company: str = "extremeice"
    forward_window_days: int = Field(default=5, gt=0)
    session_weekdays: list[int] = [0, 2, 4]  # Mon, Wed, Fri
    team_keyword: str = "adult pick up"
    excluded_keyword: str = "broomball"
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Delivery
    slack_webhook_url: str | None = None
    action_url_template: str = DEFAULT_ACTION_URL_TEMPLATE

    # Interaction
    snooze_hours: float = Field(default=2, gt=0)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @field_validator("session_weekdays")
    @classmethod
    def _valid_weekdays(cls, value: list[int]) -> list[int]:
        if not value or any(day < 0 or day > 6 for day in value):
            raise ValueError("session_weekdays must be non-empty, each 0 (Mon) to 6 (Sun)")
        return value

    @field_validator("slack_webhook_url")
    @classmethod
    def _valid_webhook(cls, value: str | None) -> str | None:
        if not value:
            return None
        if not value.startswith(("http://", "https://")):
            raise ValueError("slack_webhook_url must be an http(s) URL")
        return value

    @field_validator("action_url_template")
    @classmethod
    def _template_has_date(cls, value: str) -> str:
        if "{date}" not in value:
            raise ValueError("action_url_template must contain {date}")
        return value

    @model_validator(mode="after")
    def _active_hours_ordered(self) -> "Settings":
        if self.active_hour_end <= self.active_hour_start:
            raise ValueError("active_hour_end must be greater than active_hour_start")
        return self

    @property
    def policy(self) -> AlertPolicy:
        """Alert thresholds for the evaluator."""
        return AlertPolicy(
            urgent_threshold=self.urgent_threshold,
            min_secondary=self.min_secondary,
            min_primary_registered=self.min_primary_registered,
            viable_re_alert_delta=self.viable_re_alert_delta,
            action_url_template=self.action_url_template,
        )

    @property
    def poll_window(self) -> PollWindow:
        """Cadence settings for the poll planner."""
        return PollWindow(
            normal_interval_minutes=self.normal_interval_minutes,
            accelerated_interval_minutes=self.accelerated_interval_minutes,
            approach_window_hours=self.approach_window_hours,
            max_sleep_hours=self.max_sleep_hours,
            active_hour_start=self.active_hour_start,
            active_hour_end=self.active_hour_end,
            timezone=self.timezone,
        )
