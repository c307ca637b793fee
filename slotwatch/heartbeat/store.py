"""
Heartbeat Store

File persistence for per-session state.

The state file is a JSON array of PersistedState records. It is read at
the start of every cycle and replaced atomically at the end, so a reader
only ever sees a complete file.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Sequence

import structlog
from pydantic import ValidationError

from slotwatch.heartbeat.civil_time import ensure_utc, utc_now
from slotwatch.heartbeat.errors import StateWriteError
from slotwatch.heartbeat.models import PersistedState, UserResponse

logger = structlog.get_logger(__name__)


class StateStore:
    """
    Loads and saves the session state file.

    Loading never fails: a missing, empty or corrupt file is a cold start.
    Saving writes a sibling temp file and renames it over the destination.
    """

    def __init__(self, path: Path | str) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the JSON state file
        """
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[PersistedState]:
        """Load all records, or an empty list if the file is unusable."""
        try:
            contents = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read state file", path=str(self._path), error=str(e))
            return []

        if not contents.strip():
            return []

        try:
            data = json.loads(contents)
        except json.JSONDecodeError as e:
            logger.warning("State file is not valid JSON", path=str(self._path), error=str(e))
            return []

        if not isinstance(data, list):
            logger.warning("State file is not a list", path=str(self._path))
            return []

        states: dict[str, PersistedState] = {}
        for index, record in enumerate(data):
            try:
                state = PersistedState.model_validate(record)
            except ValidationError as e:
                logger.warning("Skipping invalid state record", index=index, error=str(e))
                continue
            states[state.resource_id] = state

        logger.debug("Loaded state", path=str(self._path), count=len(states))
        return list(states.values())

    def save(self, states: Iterable[PersistedState]) -> None:
        """
        Atomically replace the state file.

        Raises:
            StateWriteError: The file could not be written. The previous
                file, if any, is left untouched.
        """
        unique = {state.resource_id: state for state in states}
        payload = json.dumps(
            [state.model_dump(mode="json", by_alias=True) for state in unique.values()],
            indent=2,
            ensure_ascii=False,
        )

        temp_path: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=self._path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self._path)
            temp_path = None
        except (OSError, ValueError) as e:
            logger.error("Failed to save state", path=str(self._path), error=str(e))
            raise StateWriteError(str(self._path), str(e)) from e
        finally:
            # Never leave a partial temp file behind
            if temp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(temp_path)

        logger.debug("Saved state", path=str(self._path), count=len(unique))

    def last_modified(self) -> datetime | None:
        """When the state file was last written, i.e. the last completed poll."""
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            return None
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def record_user_response(
        self,
        resource_id: str,
        response: UserResponse,
        now: datetime | None = None,
        snooze_hours: float = 2,
    ) -> bool:
        """
        Record how the user answered an alert.

        Not locked against a cycle in another process. A cycle re-reads
        responses just before it saves, so only a response landing between
        that read and the rename can be lost.

        Returns:
            True if the session was tracked and the response saved
        """
        states = self.load()
        if find_state(states, resource_id) is None:
            logger.warning("Response for untracked session", resource_id=resource_id)
            return False

        updated = apply_user_response(
            states, resource_id, response, now or utc_now(), snooze_hours
        )
        self.save(updated)
        logger.info("Recorded user response", resource_id=resource_id, response=response.value)
        return True


def find_state(states: Iterable[PersistedState], resource_id: str) -> PersistedState | None:
    """Find a session's state by id."""
    for state in states:
        if state.resource_id == resource_id:
            return state
    return None


def prune(states: Sequence[PersistedState], today: date) -> list[PersistedState]:
    """Drop sessions dated before ``today``."""
    return [s for s in states if s.snapshot.session_date >= today]


def drop_elapsed(states: Sequence[PersistedState], now: datetime) -> list[PersistedState]:
    """Drop sessions that started strictly before ``now``."""
    now = ensure_utc(now)
    return [s for s in states if s.snapshot.anchor_instant >= now]


def merge_states(
    prior: Sequence[PersistedState],
    updates: Sequence[PersistedState],
) -> list[PersistedState]:
    """
    Overlay this cycle's states on the previous ones.

    Sessions not observed this cycle keep their previous record. Order is
    prior order, then newly seen sessions.
    """
    merged = {state.resource_id: state for state in prior}
    for state in updates:
        merged[state.resource_id] = state
    return list(merged.values())


def apply_user_response(
    states: Sequence[PersistedState],
    resource_id: str,
    response: UserResponse,
    now: datetime,
    snooze_hours: float = 2,
) -> list[PersistedState]:
    """
    Return a copy of ``states`` with a user response recorded.

    A snooze lasts ``snooze_hours`` from ``now``. Any other response clears
    the snooze. Unknown ids leave the list unchanged.
    """
    now = ensure_utc(now)
    snooze_until = now + timedelta(hours=snooze_hours) if response == UserResponse.SNOOZED else None
    responded_at = None if response == UserResponse.NONE else now

    return [
        state.model_copy(
            update={
                "user_response": response,
                "user_responded_at": responded_at,
                "snooze_until": snooze_until,
            }
        )
        if state.resource_id == resource_id
        else state
        for state in states
    ]


def carry_user_responses(
    states: Sequence[PersistedState],
    fresh: Iterable[PersistedState],
) -> list[PersistedState]:
    """
    Take user responses from a fresh read of the state file.

    A cycle never changes response fields, so whatever is on disk when the
    cycle saves is the latest answer, including one recorded mid-cycle.
    """
    on_disk = {state.resource_id: state for state in fresh}
    carried: list[PersistedState] = []
    for state in states:
        latest = on_disk.get(state.resource_id)
        if latest is None:
            carried.append(state)
            continue
        carried.append(state.model_copy(update={
            "user_response": latest.user_response,
            "user_responded_at": latest.user_responded_at,
            "snooze_until": latest.snooze_until,
        }))
    return carried
