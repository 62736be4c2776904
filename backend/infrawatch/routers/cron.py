"""Cron-triggered monitor sync endpoint.

Called every few minutes by an external scheduler with the shared secret
as a bearer token.
"""
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..database import get_session_factory
from ..exceptions import SourceUnavailableError
from ..schemas.sync import SyncResponse, SyncSummaryBlock
from ..services.scheduler import scheduler_service
from ..services.sync import SyncState, build_sync_job
from ..services.uptime_kuma import UptimeKumaClient, create_source_client
from .deps import require_cron_secret

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cron", tags=["cron"])


async def get_source_client() -> AsyncIterator[UptimeKumaClient]:
    """Dependency yielding an upstream client that is closed after the request."""
    client = create_source_client()
    try:
        yield client
    finally:
        await client.close()


def get_sync_state() -> SyncState:
    """Dependency returning the sync state shared with the in-process scheduler."""
    return scheduler_service.state


@router.api_route(
    "/sync-monitors",
    methods=["GET", "POST"],
    response_model=SyncResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def sync_monitors(
    client: UptimeKumaClient = Depends(get_source_client),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    state: SyncState = Depends(get_sync_state),
):
    """Run one sync pass and report its counts."""
    job = build_sync_job(client, session_factory)
    try:
        summary = await job.run(state=state)
    except SourceUnavailableError:
        raise HTTPException(status_code=503, detail="Failed to connect to Uptime Kuma")
    except Exception as e:
        logger.error(f"[Monitor Sync] Fatal error: {e}")
        raise HTTPException(status_code=500, detail="Monitor sync job failed")

    return SyncResponse(
        success=True,
        duration=summary.duration_ms,
        summary=SyncSummaryBlock(
            total_monitors=summary.total_monitors,
            monitors_synced=summary.monitors_synced,
            monitors_failed=summary.monitors_failed,
            heartbeats_stored=summary.heartbeats_stored,
            heartbeats_errors=summary.heartbeats_errors,
            old_heartbeats_deleted=summary.heartbeats_deleted,
        ),
    )
