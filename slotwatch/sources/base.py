"""
Snapshot Source Base Class

Defines the contract every upstream booking source implements: fetch the
sessions currently on offer and normalize them into snapshots.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from slotwatch.heartbeat.models import ResourceSnapshot


class SnapshotSource(ABC):
    """
    Abstract base class for session sources.

    Implementations raise SourceError when the upstream cannot be read;
    the cycle treats that as "no fresh data" rather than "no sessions".
    """

    name: str = "base"

    @abstractmethod
    async def fetch(self, now: datetime) -> list[ResourceSnapshot]:
        """
        Fetch the sessions on offer around ``now``.

        Args:
            now: Current instant, used to pick the date range

        Returns:
            Snapshots in no particular order
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None
