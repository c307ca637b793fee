"""
Alert Routing

Delivers alerts to the configured sinks (console, Slack).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from slotwatch.heartbeat.civil_time import format_clock, format_day
from slotwatch.heartbeat.models import Alert, AlertClass

logger = structlog.get_logger(__name__)

# Responses are recorded from the command line; Slack only links to the booking page
RESPOND_COMMAND = "slotwatch sessions respond {resource_id} accepted|declined|snoozed"


class AlertSink(ABC):
    """A channel alerts can be delivered to."""

    name: str = "sink"

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def send(self, alert: Alert) -> None:
        """Deliver one alert. Raises on failure."""
        ...

    async def close(self) -> None:
        return None


class ConsoleSink(AlertSink):
    """Prints alerts to the terminal. Always available."""

    name = "console"

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    async def send(self, alert: Alert) -> None:
        color = _CLASS_COLORS.get(alert.alert_class, "white")

        content = Text()
        content.append(f"{alert.message}\n\n", style="white")
        content.append("Register: ", style="dim")
        content.append(alert.action_url, style="cyan")

        self._console.print(Panel(
            content,
            title=f"[bold {color}]{alert.title}[/bold {color}]",
            subtitle=f"[dim]{alert.resource_id}[/dim]",
            border_style=color,
        ))


class SlackSink(AlertSink):
    """Posts alerts to a Slack incoming webhook as Block Kit messages."""

    name = "slack"

    def __init__(
        self,
        webhook_url: str | None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Slack sink.

        Args:
            webhook_url: Incoming webhook URL
            timeout_seconds: Request timeout
            transport: Optional httpx transport (tests)
        """
        self._webhook_url = webhook_url or ""
        self._timeout = timeout_seconds
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, alert: Alert) -> None:
        if not self.is_configured():
            raise RuntimeError("Slack sink is not configured")

        client = await self._get_client()
        response = await client.post(self._webhook_url, json=build_slack_payload(alert))
        response.raise_for_status()


class AlertRouter:
    """
    Fans alerts out to every configured sink.

    A failing sink is logged and skipped; it never blocks the other sinks
    or the remaining alerts.
    """

    def __init__(self, sinks: Sequence[AlertSink] | None = None) -> None:
        candidates = list(sinks) if sinks is not None else [ConsoleSink()]
        self._sinks = [sink for sink in candidates if sink.is_configured()]

    @property
    def sink_names(self) -> list[str]:
        return [sink.name for sink in self._sinks]

    async def deliver(self, alerts: Sequence[Alert]) -> dict[str, list[str]]:
        """
        Send alerts in order to every sink.

        Returns:
            Resource id -> names of sinks that failed, for alerts with
            at least one failure
        """
        failures: dict[str, list[str]] = {}
        for alert in alerts:
            for sink in self._sinks:
                try:
                    await sink.send(alert)
                except Exception as e:
                    logger.error(
                        "Failed to send alert",
                        sink=sink.name,
                        resource_id=alert.resource_id,
                        error=str(e),
                    )
                    failures.setdefault(alert.resource_id, []).append(sink.name)
        return failures

    async def close(self) -> None:
        for sink in self._sinks:
            await sink.close()


def build_slack_payload(alert: Alert) -> dict[str, Any]:
    """Block Kit payload for an alert."""
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": alert.title,
                "emoji": True,
            },
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": _slack_text(alert),
            },
        },
    ]

    # Nothing to sign up for once a session is full
    if alert.alert_class != AlertClass.SATURATED:
        register: dict[str, Any] = {
            "type": "button",
            "text": {"type": "plain_text", "text": "Register Now"},
            "url": alert.action_url,
        }
        style = _BUTTON_STYLES.get(alert.alert_class)
        if style:
            register["style"] = style

        blocks.append({
            "type": "actions",
            "elements": [register],
        })
        blocks.append({
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"Reply with `{RESPOND_COMMAND.format(resource_id=alert.resource_id)}`",
                },
            ],
        })

    return {
        "blocks": blocks,
        "text": f"{alert.title}: {alert.resource_id}",  # Fallback
    }


def _slack_text(alert: Alert) -> str:
    snapshot = alert.snapshot
    remaining = snapshot.remaining
    spots = "spot" if remaining == 1 else "spots"

    text = (
        f"*{_escape(snapshot.weekday_name)}, {format_day(snapshot.session_date)}* "
        f"at *{format_clock(snapshot.start_time)}*\n\n"
    )

    if alert.alert_class == AlertClass.SATURATED:
        return text + "Session is now full."
    if alert.alert_class == AlertClass.REOPENED:
        return text + f"Spots opened up! *{remaining}* {spots} available."

    text += f"*Players:* {snapshot.primary_count}/{snapshot.primary_max} ({remaining} {spots} left)\n"
    text += f"*Goalies:* {snapshot.secondary_count}/{snapshot.secondary_max}\n"
    if alert.alert_class == AlertClass.URGENT:
        text += "\n_Act now!_"
    else:
        text += "\n_Worth signing up!_"
    return text


_CLASS_COLORS = {
    AlertClass.SATURATED: "red",
    AlertClass.REOPENED: "green",
    AlertClass.URGENT: "yellow",
    AlertClass.VIABLE: "cyan",
}

_BUTTON_STYLES = {
    AlertClass.URGENT: "danger",
    AlertClass.VIABLE: "primary",
    AlertClass.REOPENED: "primary",
}


def _escape(text: str) -> str:
    """Escape the characters Slack treats as markup."""
    return (
        text
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def build_router(settings: Any) -> AlertRouter:
    """Console plus Slack when a webhook is configured."""
    sinks: list[AlertSink] = [ConsoleSink()]
    if settings.slack_webhook_url:
        sinks.append(SlackSink(settings.slack_webhook_url, settings.request_timeout_seconds))
    return AlertRouter(sinks)
