"""
Heartbeat Engine

Session tracking for slotwatch.

Provides:
- Evaluator deciding which alert, if any, a session deserves
- Poll planner deciding when to look again
- State store persisting per-session records between cycles
- Alert routing to console and Slack
- Cycle orchestration and the wake timer
"""

from slotwatch.heartbeat.models import (
    Alert,
    AlertClass,
    AlertPolicy,
    PersistedState,
    PollDecision,
    PollReason,
    PollWindow,
    ResourceSnapshot,
    UserResponse,
)
from slotwatch.heartbeat.errors import (
    SlotwatchError,
    SourceError,
    StateWriteError,
)
from slotwatch.heartbeat.civil_time import CivilTime
from slotwatch.heartbeat.evaluator import (
    evaluate,
    filling_fast,
)
from slotwatch.heartbeat.poll_schedule import (
    clamp_to_active_hours,
    next_poll,
)
from slotwatch.heartbeat.store import (
    StateStore,
    apply_user_response,
    prune,
)
from slotwatch.heartbeat.alerts import (
    AlertRouter,
    ConsoleSink,
    SlackSink,
)
from slotwatch.heartbeat.cycle import (
    CycleOutcome,
    PollCycle,
    build_cycle,
)
from slotwatch.heartbeat.scheduler import PollScheduler

__all__ = [
    # Models
    "Alert",
    "AlertClass",
    "AlertPolicy",
    "PersistedState",
    "PollDecision",
    "PollReason",
    "PollWindow",
    "ResourceSnapshot",
    "UserResponse",
    # Errors
    "SlotwatchError",
    "SourceError",
    "StateWriteError",
    # Time
    "CivilTime",
    # Evaluator
    "evaluate",
    "filling_fast",
    # Poll planner
    "clamp_to_active_hours",
    "next_poll",
    # Store
    "StateStore",
    "apply_user_response",
    "prune",
    # Alerts
    "AlertRouter",
    "ConsoleSink",
    "SlackSink",
    # Cycle
    "CycleOutcome",
    "PollCycle",
    "build_cycle",
    "PollScheduler",
]
