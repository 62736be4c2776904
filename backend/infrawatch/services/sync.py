"""Sync job - mirrors upstream monitors and heartbeats into the local store.

One run:
1. Health-check the upstream source (abort the run if unreachable)
2. Upsert every upstream monitor, each independently
3. Fetch and store recent heartbeats for every registered monitor
4. Purge heartbeats older than the retention horizon
5. Return a summary of counts

Per-monitor work runs through a bounded worker pool and every task's
outcome is collected, so one failing monitor never blocks the others.
Only the connectivity check in step 1 is fatal.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import settings
from ..exceptions import SourceClientError, SourceUnavailableError
from .store import insert_heartbeat, purge_heartbeats, retention_cutoff, upsert_monitor
from .uptime_kuma import SourceMonitor, UptimeKumaClient, parse_heartbeat, parse_monitor

logger = logging.getLogger(__name__)

LOG_PREFIX = "[Monitor Sync]"


@dataclass
class SyncSummary:
    """Counts reported by one sync run."""
    total_monitors: int = 0
    monitors_synced: int = 0
    monitors_failed: int = 0
    heartbeats_stored: int = 0
    heartbeats_errors: int = 0
    heartbeats_deleted: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SyncState:
    """State carried between runs by whoever schedules the job."""
    last_run_at: Optional[datetime] = None
    last_cleanup_at: Optional[datetime] = None
    last_summary: Optional[SyncSummary] = None
    runs: int = 0


@dataclass
class _HeartbeatOutcome:
    stored: int = 0
    errors: int = 0


class MonitorSyncJob:
    """One idempotent synchronization pass against the upstream source."""

    def __init__(
        self,
        client: UptimeKumaClient,
        session_factory: async_sessionmaker,
        max_concurrency: int = 10,
        heartbeat_limit: int = 100,
        retention_months: int = 3,
    ):
        self.client = client
        self.session_factory = session_factory
        self.max_concurrency = max(1, max_concurrency)
        self.heartbeat_limit = heartbeat_limit
        self.retention_months = retention_months

    async def run(self, state: Optional[SyncState] = None, now: Optional[datetime] = None) -> SyncSummary:
        """Run the sync.

        Args:
            state: Optional state updated in place when the run completes
            now: Reference time for the retention cutoff (defaults to utcnow)

        Raises:
            SourceUnavailableError: The upstream source is unreachable; nothing was written
        """
        started = time.monotonic()
        now = now or datetime.utcnow()
        logger.info(f"{LOG_PREFIX} Starting monitor sync job...")

        if not await self.client.health_check():
            logger.error(f"{LOG_PREFIX} Failed to connect to Uptime Kuma")
            raise SourceUnavailableError("Failed to connect to Uptime Kuma")

        try:
            raw_monitors = await self.client.list_monitors()
        except SourceClientError as e:
            logger.error(f"{LOG_PREFIX} Failed to fetch monitors: {e}")
            raise SourceUnavailableError(f"Failed to fetch monitors: {e}") from e

        summary = SyncSummary(total_monitors=len(raw_monitors))
        logger.info(f"{LOG_PREFIX} Fetched {len(raw_monitors)} monitors from Uptime Kuma")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        registered = await self._register_monitors(raw_monitors, now, semaphore)
        summary.monitors_synced = len(registered)
        summary.monitors_failed = len(raw_monitors) - len(registered)
        logger.info(f"{LOG_PREFIX} Synced {summary.monitors_synced} monitors ({summary.monitors_failed} failed)")

        outcomes = await asyncio.gather(
            *[self._ingest_with_limit(semaphore, source, monitor_id) for source, monitor_id in registered],
            return_exceptions=True,
        )
        for (source, _), outcome in zip(registered, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"{LOG_PREFIX} Error syncing heartbeats for monitor {source.external_id}: {outcome}")
                summary.heartbeats_errors += 1
            else:
                summary.heartbeats_stored += outcome.stored
                summary.heartbeats_errors += outcome.errors
        logger.info(
            f"{LOG_PREFIX} Stored {summary.heartbeats_stored} heartbeats ({summary.heartbeats_errors} errors)"
        )

        cutoff = retention_cutoff(now, self.retention_months)
        async with self.session_factory() as session:
            summary.heartbeats_deleted = await purge_heartbeats(session, cutoff)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"{LOG_PREFIX} Completed in {summary.duration_ms}ms")

        if state is not None:
            state.last_run_at = now
            state.last_cleanup_at = now
            state.last_summary = summary
            state.runs += 1
        return summary

    async def _register_monitors(
        self,
        raw_monitors: List[dict],
        now: datetime,
        semaphore: asyncio.Semaphore,
    ) -> List[Tuple[SourceMonitor, int]]:
        """Parse and upsert every monitor; returns the ones that made it with their internal ids.

        A monitor that fails to parse counts as failed, same as one whose upsert fails.
        """

        async def register(raw: dict) -> Tuple[SourceMonitor, int]:
            source = parse_monitor(raw)
            async with semaphore:
                async with self.session_factory() as session:
                    return source, await upsert_monitor(session, source, now)

        results = await asyncio.gather(*[register(raw) for raw in raw_monitors], return_exceptions=True)

        registered = []
        for raw, result in zip(raw_monitors, results):
            if isinstance(result, BaseException):
                external_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning(f"{LOG_PREFIX} Failed to register monitor {external_id!r}: {result}")
            else:
                registered.append(result)
        return registered

    async def _ingest_with_limit(
        self,
        semaphore: asyncio.Semaphore,
        source: SourceMonitor,
        monitor_id: int,
    ) -> _HeartbeatOutcome:
        async with semaphore:
            return await self._ingest_heartbeats(source, monitor_id)

    async def _ingest_heartbeats(self, source: SourceMonitor, monitor_id: int) -> _HeartbeatOutcome:
        """Fetch a monitor's recent heartbeats and store the new ones."""
        raw_heartbeats = await self.client.list_heartbeats(source.external_id, self.heartbeat_limit)
        outcome = _HeartbeatOutcome()

        async with self.session_factory() as session:
            for raw in raw_heartbeats:
                try:
                    heartbeat = parse_heartbeat(raw)
                except (ValueError, TypeError, AttributeError) as e:
                    logger.warning(f"{LOG_PREFIX} Malformed heartbeat for monitor {source.external_id}: {e}")
                    outcome.errors += 1
                    continue

                try:
                    if await insert_heartbeat(session, monitor_id, heartbeat):
                        outcome.stored += 1
                except IntegrityError:
                    # Same sample written by a concurrent run
                    await session.rollback()
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.warning(f"{LOG_PREFIX} Failed to store heartbeat for monitor {source.external_id}: {e}")
                    outcome.errors += 1

        logger.debug(f"{LOG_PREFIX} Monitor {source.external_id}: {outcome.stored} new heartbeats")
        return outcome


def build_sync_job(client: UptimeKumaClient, session_factory: async_sessionmaker) -> MonitorSyncJob:
    """Build a sync job configured from application settings."""
    return MonitorSyncJob(
        client,
        session_factory,
        max_concurrency=settings.sync_max_concurrency,
        heartbeat_limit=settings.heartbeat_fetch_limit,
        retention_months=settings.heartbeat_retention_months,
    )
