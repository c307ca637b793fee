"""
Heartbeat Scheduler

APScheduler-based wake timer that runs one poll cycle at a time.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from slotwatch.heartbeat.civil_time import utc_now

if TYPE_CHECKING:
    from slotwatch.heartbeat.cycle import PollCycle

logger = structlog.get_logger(__name__)

JOB_ID = "poll-cycle"

# Fallback delay when a cycle raised before it could plan the next one
RETRY_DELAY = timedelta(minutes=15)


class PollScheduler:
    """
    Runs a poll cycle now, then again at whatever time it asks for.

    Only one wake job exists at any moment and cycles never overlap. Once
    ``stop()`` begins no new cycle starts; one already running finishes.
    """

    def __init__(self, cycle: PollCycle) -> None:
        """
        Initialize the scheduler.

        Args:
            cycle: The cycle to run on each wake
        """
        self._cycle = cycle
        self._scheduler: AsyncIOScheduler | None = None
        self._lock = asyncio.Lock()
        self._running = False
        self._stopping = False

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        jobstores = {
            "default": MemoryJobStore(),
        }
        executors = {
            "default": AsyncIOExecutor(),
        }
        job_defaults = {
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Only one cycle at a time
            "misfire_grace_time": 300,  # 5 minutes grace for a late wake
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone="UTC",
        )

    async def start(self) -> None:
        """Start the scheduler and run the first cycle immediately."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting poll scheduler")
        self._scheduler = self._create_scheduler()
        self._scheduler.start()
        self._running = True
        self._stopping = False

        self._arm(utc_now())
        logger.info("Poll scheduler started")

    async def stop(self) -> None:
        """Cancel the pending wake and wait for an in-flight cycle."""
        if not self._running or self._scheduler is None:
            return

        logger.info("Stopping poll scheduler")
        self._stopping = True
        self._cancel_pending()

        # Wait out a cycle that is already running
        async with self._lock:
            pass

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._running = False
        await self._cycle.close()
        logger.info("Poll scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    @property
    def next_wake(self) -> datetime | None:
        """When the pending cycle is due, if one is armed."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def _arm(self, run_at: datetime) -> None:
        """Replace the pending wake with one at ``run_at``."""
        if self._scheduler is None or self._stopping:
            return

        self._scheduler.add_job(
            self._run_cycle,
            trigger=DateTrigger(run_date=run_at),
            id=JOB_ID,
            name="poll-cycle",
            replace_existing=True,
        )

    def _cancel_pending(self) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(JOB_ID)
        except JobLookupError:
            logger.debug("No pending wake to cancel")

    async def _run_cycle(self) -> None:
        """
        Execute one cycle and re-arm.

        This is called by APScheduler when the wake is due.
        """
        if self._stopping:
            return

        async with self._lock:
            if self._stopping:
                return

            try:
                outcome = await self._cycle.run()
            except Exception as e:
                logger.error("Cycle failed", error=str(e))
                self._arm(utc_now() + RETRY_DELAY)
                return

            self._arm(outcome.decision.wake_at)
