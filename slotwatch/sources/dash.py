"""
DASH Source

Reads drop-in sessions from a DaySmart "DASH" JSON:API booking site.

Each session is published as two events at the same start time, one for
skaters "(PLAYERS)" and one for goalies "(GOALIES)". They are paired into
a single snapshot: players are the primary capacity, goalies the secondary.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Iterable

import httpx
import structlog
from pydantic import ValidationError

from slotwatch.heartbeat.civil_time import CivilTime, ensure_utc
from slotwatch.heartbeat.errors import SourceError
from slotwatch.heartbeat.models import ResourceSnapshot
from slotwatch.sources.base import SnapshotSource

logger = structlog.get_logger(__name__)

API_PREFIX = "/dash/jsonapi/api/v1"
PLAYERS_MARKER = "(PLAYERS)"
GOALIES_MARKER = "(GOALIES)"


class DashSource(SnapshotSource):
    """
    Two-step fetch against the DASH API.

    1. ``date-availabilities`` maps each date to the event ids on it
    2. ``events`` returns those events with their team and head-count
       summary included
    """

    name = "dash"

    def __init__(
        self,
        civil: CivilTime,
        base_url: str = "https://apps.daysmartrecreation.com",
        company: str = "extremeice",
        forward_days: int = 5,
        weekdays: Iterable[int] = (0, 2, 4),
        team_keyword: str = "adult pick up",
        excluded_keyword: str = "broomball",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the source.

        Args:
            civil: Reference timezone for session dates and times
            base_url: Booking site root
            company: DASH company slug
            forward_days: How many days ahead to look, today included
            weekdays: Weekdays (0 = Monday) that carry sessions
            team_keyword: Case-insensitive marker for tracked teams
            excluded_keyword: Case-insensitive marker for teams to ignore
            timeout_seconds: Per-request timeout
            transport: Optional httpx transport (tests)
        """
        self.civil = civil
        self.base_url = base_url
        self.company = company
        self.forward_days = forward_days
        self.weekdays = frozenset(weekdays)
        self.team_keyword = team_keyword
        self.excluded_keyword = excluded_keyword
        self._timeout = timeout_seconds
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Any, civil: CivilTime) -> DashSource:
        """Build a source from application settings."""
        return cls(
            civil=civil,
            base_url=settings.source_base_url,
            company=settings.source_company,
            forward_days=settings.forward_window_days,
            weekdays=settings.session_weekdays,
            team_keyword=settings.team_keyword,
            excluded_keyword=settings.excluded_keyword,
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, now: datetime) -> list[ResourceSnapshot]:
        today = self.civil.today(now)
        target_dates = calculate_target_dates(today, self.forward_days, self.weekdays)
        if not target_dates:
            return []

        availability = await self._get_json(
            f"{API_PREFIX}/date-availabilities",
            {
                "cache[save]": "false",
                "page[size]": "365",
                "sort": "id",
                "filter[date__gte]": target_dates[0],
                "company": self.company,
            },
        )
        try:
            event_ids = extract_event_ids(availability, target_dates)
        except (AttributeError, TypeError) as e:
            raise SourceError(f"Unexpected date-availabilities payload: {e}") from e

        if not event_ids:
            logger.info("No events on target dates", dates=target_dates)
            return []

        events = await self._get_json(
            f"{API_PREFIX}/events",
            {
                "cache[save]": "false",
                "filter[id__in]": ",".join(str(i) for i in event_ids),
                "filter[unconstrained]": "1",
                "company": self.company,
                "include": "summary,homeTeam,resource",
            },
        )
        try:
            snapshots = parse_events(
                events,
                self.civil,
                team_keyword=self.team_keyword,
                excluded_keyword=self.excluded_keyword,
            )
        except (AttributeError, TypeError) as e:
            raise SourceError(f"Unexpected events payload: {e}") from e
        logger.info("Fetched sessions", count=len(snapshots), dates=len(target_dates))
        return snapshots

    async def _get_json(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise SourceError(f"Request to {path} failed: {e}") from e
        except ValueError as e:
            raise SourceError(f"Response from {path} is not JSON") from e

        if not isinstance(data, dict):
            raise SourceError(f"Unexpected response shape from {path}")
        return data


def calculate_target_dates(
    today: date,
    forward_days: int,
    weekdays: Iterable[int] = (0, 2, 4),
) -> list[str]:
    """Session dates from today through ``today + forward_days`` inclusive."""
    wanted = set(weekdays)
    days = (today + timedelta(days=offset) for offset in range(forward_days + 1))
    return [day.isoformat() for day in days if day.weekday() in wanted]


def extract_event_ids(payload: dict[str, Any], target_dates: list[str]) -> list[int]:
    """Event ids listed for the target dates, de-duplicated, in order.

    Raises:
        AttributeError, TypeError: The payload is not shaped like a JSON:API
            document
    """
    wanted = set(target_dates)
    seen: set[int] = set()
    event_ids: list[int] = []

    for entry in payload.get("data") or []:
        if entry.get("id") not in wanted:
            continue
        for event_id in (entry.get("attributes") or {}).get("events") or []:
            if event_id not in seen:
                seen.add(event_id)
                event_ids.append(event_id)

    return event_ids


def parse_events(
    payload: dict[str, Any],
    civil: CivilTime,
    team_keyword: str = "adult pick up",
    excluded_keyword: str = "broomball",
) -> list[ResourceSnapshot]:
    """
    Pair player and goalie events into session snapshots.

    Events without a resolvable team or head-count summary are ignored, as
    are sessions missing either half of the pair.
    """
    included = {
        (item.get("type"), item.get("id")): item
        for item in payload.get("included") or []
    }
    keyword = team_keyword.lower()
    excluded = excluded_keyword.lower()

    sessions: dict[tuple[str, str], dict[str, Any]] = {}

    for event in payload.get("data") or []:
        relationships = event.get("relationships") or {}
        team = _resolve(included, relationships.get("homeTeam"))
        summary = _resolve(included, relationships.get("summary"))
        if team is None or summary is None:
            continue

        team_name = (team.get("attributes") or {}).get("name") or ""
        lowered = team_name.lower()
        if keyword not in lowered or (excluded and excluded in lowered):
            continue

        attributes = event.get("attributes") or {}
        try:
            start = civil.to_civil(_as_aware(attributes["start"], civil))
            end = civil.to_civil(_as_aware(attributes["end"], civil))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping event with bad times", event_id=event.get("id"))
            continue

        counts = summary.get("attributes") or {}
        registered = counts.get("registered_count") or 0
        capacity = counts.get("composite_capacity") or 0

        key = (start.date().isoformat(), f"{start:%H:%M}")
        session = sessions.setdefault(
            key,
            {
                "session_date": start.date(),
                "start_time": key[1],
                "anchor_instant": ensure_utc(start),
                "day_of_week": f"{start:%A}",
                "time_label": f"{_short_clock(start)} - {_short_clock(end)}",
                "event_name": "",
                "primary_count": 0,
                "primary_max": 0,
                "secondary_count": 0,
                "secondary_max": 0,
            },
        )

        if PLAYERS_MARKER in team_name:
            session["primary_count"] = registered
            session["primary_max"] = capacity
            session["event_name"] = team_name
        elif GOALIES_MARKER in team_name:
            session["secondary_count"] = registered
            session["secondary_max"] = capacity
            if not session["event_name"]:
                session["event_name"] = team_name

    snapshots: list[ResourceSnapshot] = []
    for key, session in sessions.items():
        if session["primary_max"] <= 0 or session["secondary_max"] <= 0:
            continue
        try:
            snapshots.append(ResourceSnapshot.model_validate(session))
        except ValidationError as e:
            logger.warning("Skipping malformed session", session=":".join(key), error=str(e))

    snapshots.sort(key=lambda s: s.anchor_instant)
    return snapshots


def _resolve(
    included: dict[tuple[Any, Any], dict[str, Any]],
    relationship: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Look up a JSON:API relationship in the ``included`` section."""
    ref = (relationship or {}).get("data")
    if not ref:
        return None
    return included.get((ref.get("type"), ref.get("id")))


def _as_aware(value: str, civil: CivilTime) -> datetime:
    """Parse an ISO timestamp; values without an offset are local time."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=civil.zone)
    return parsed


def _short_clock(at: datetime) -> str:
    """``6am`` or ``7:10am``."""
    hour = at.hour % 12 or 12
    period = "pm" if at.hour >= 12 else "am"
    minutes = f":{at.minute:02d}" if at.minute else ""
    return f"{hour}{minutes}{period}"
