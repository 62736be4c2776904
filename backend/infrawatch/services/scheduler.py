"""Scheduler service - runs the monitor sync on a fixed interval in-process.

The cron endpoint is the primary trigger; this scheduler is for
deployments without an external cron. Both paths share the same
``SyncState`` instance, which is handed to each run explicitly.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..database import async_session
from ..exceptions import SourceUnavailableError
from .sync import SyncState, build_sync_job
from .uptime_kuma import create_source_client

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for scheduling periodic monitor syncs."""

    def __init__(self, interval_minutes: int = 5):
        self.interval_minutes = interval_minutes
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.state = SyncState()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        # One run at a time; a slow run makes the next tick skip, not stack
        self.scheduler.add_job(
            self.run_sync,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="sync_monitors",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (sync every {self.interval_minutes}m)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def run_sync(self):
        """Run one sync pass, logging instead of raising."""
        try:
            async with create_source_client() as client:
                job = build_sync_job(client, async_session)
                await job.run(state=self.state)
        except SourceUnavailableError as e:
            logger.error(f"Scheduled sync aborted: {e}")
        except Exception as e:
            logger.error(f"Error running scheduled sync: {e}")


# Global instance
scheduler_service = SchedulerService(interval_minutes=settings.sync_interval_minutes)
