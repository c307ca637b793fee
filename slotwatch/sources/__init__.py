"""
Session Sources

Adapters that fetch upstream booking data and normalize it into
ResourceSnapshot objects.
"""

from slotwatch.sources.base import SnapshotSource
from slotwatch.sources.dash import (
    DashSource,
    calculate_target_dates,
    extract_event_ids,
    parse_events,
)

__all__ = [
    "SnapshotSource",
    "DashSource",
    "calculate_target_dates",
    "extract_event_ids",
    "parse_events",
]
