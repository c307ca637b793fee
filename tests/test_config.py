"""Tests for settings loading and validation."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from slotwatch.config import Settings
from slotwatch.heartbeat.models import AlertPolicy, PollWindow


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path: Path) -> None:
    """Keep the host environment and any .env file out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("SLOTWATCH_"):
            monkeypatch.delenv(name)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        """Test defaults match the documented values."""
        settings = Settings()

        assert settings.urgent_threshold == 4
        assert settings.viable_re_alert_delta == 2
        assert settings.approach_window_hours == 96
        assert settings.max_sleep_hours == 12
        assert (settings.active_hour_start, settings.active_hour_end) == (6, 23)
        assert settings.timezone == "America/New_York"
        assert settings.session_weekdays == [0, 2, 4]
        assert settings.slack_webhook_url is None

    def test_env_override(self, monkeypatch) -> None:
        """Test values are read from prefixed environment variables."""
        monkeypatch.setenv("SLOTWATCH_URGENT_THRESHOLD", "6")
        monkeypatch.setenv("SLOTWATCH_TIMEZONE", "America/Chicago")
        monkeypatch.setenv("SLOTWATCH_SESSION_WEEKDAYS", "[1, 3]")
        monkeypatch.setenv("SLOTWATCH_STATE_PATH", "/tmp/slotwatch.json")

        settings = Settings()

        assert settings.urgent_threshold == 6
        assert settings.timezone == "America/Chicago"
        assert settings.session_weekdays == [1, 3]
        assert settings.state_path == Path("/tmp/slotwatch.json")

    def test_dotenv_file(self, tmp_path: Path) -> None:
        """Test a .env file in the working directory is honoured."""
        (tmp_path / ".env").write_text("SLOTWATCH_MAX_SLEEP_HOURS=8\n")
        assert Settings().max_sleep_hours == 8

    @pytest.mark.parametrize(
        "overrides",
        [
            {"urgent_threshold": -1},
            {"min_primary_registered": -5},
            {"viable_re_alert_delta": 0},
            {"normal_interval_minutes": 0},
            {"max_sleep_hours": 0},
            {"active_hour_start": 24},
            {"active_hour_start": 20, "active_hour_end": 8},
            {"active_hour_start": 9, "active_hour_end": 9},
            {"timezone": "Mars/Olympus_Mons"},
            {"session_weekdays": [7]},
            {"session_weekdays": []},
            {"slack_webhook_url": "hooks.slack.com/abc"},
            {"action_url_template": "https://example.com/register"},
        ],
    )
    def test_invalid_values(self, overrides: dict) -> None:
        """Test invalid configuration fails at construction."""
        with pytest.raises(ValidationError):
            Settings(**overrides)

    def test_blank_webhook_is_unset(self) -> None:
        """Test an empty webhook value disables Slack."""
        assert Settings(slack_webhook_url="").slack_webhook_url is None

    def test_policy_view(self) -> None:
        """Test the evaluator policy mirrors the thresholds."""
        settings = Settings(urgent_threshold=3, viable_re_alert_delta=4)

        policy = settings.policy

        assert isinstance(policy, AlertPolicy)
        assert policy.urgent_threshold == 3
        assert policy.viable_re_alert_delta == 4
        assert policy.action_url_template == settings.action_url_template

    def test_poll_window_view(self) -> None:
        """Test the planner window mirrors the cadence settings."""
        window = Settings(accelerated_interval_minutes=15, timezone="Europe/Berlin").poll_window

        assert isinstance(window, PollWindow)
        assert window.accelerated_interval_minutes == 15
        assert window.timezone == "Europe/Berlin"
