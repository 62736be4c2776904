"""Infrastructure dashboard read API."""
import logging
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.infra import (
    IncidentItem,
    IncidentsResponse,
    MonitorStatsItem,
    MonitorStatusItem,
    MonitorsResponse,
    OverallStatsBlock,
    StatsResponse,
)
from ..services.cache import ReadCache
from ..services.incidents import DEFAULT_LIMIT
from ..services.infra import (
    get_cached_incidents,
    get_cached_monitors,
    get_cached_stats,
    get_read_cache,
    invalidate_infra_cache,
)
from .deps import require_cron_secret

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/infra", tags=["infra"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Uptime and latency per active monitor, plus overall figures."""
    try:
        snapshot = await get_cached_stats(cache, db)
    except SQLAlchemyError as e:
        logger.error(f"[API /infra/stats] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch statistics")

    return StatsResponse(
        overall=OverallStatsBlock(**asdict(snapshot.overall)),
        monitors=[MonitorStatsItem(**asdict(m)) for m in snapshot.monitors],
        timestamp=datetime.utcnow(),
    )


@router.get("/incidents", response_model=IncidentsResponse)
async def get_incidents(
    limit: int = Query(default=DEFAULT_LIMIT),
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Recent outages derived from DOWN heartbeats.

    ``limit`` bounds the DOWN samples scanned and is clamped to 1-100.
    """
    try:
        incidents, total = await get_cached_incidents(cache, db, limit)
    except SQLAlchemyError as e:
        logger.error(f"[API /infra/incidents] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch incidents")

    return IncidentsResponse(
        incidents=[
            IncidentItem(
                monitor_id=i.monitor_id,
                monitor_name=i.monitor_name,
                start_time=i.start_time,
                end_time=i.end_time,
                duration=i.duration,
                message=i.message,
                count=i.count,
                is_ongoing=i.is_ongoing,
                resolved=i.resolved,
            )
            for i in incidents
        ],
        total_count=total,
        timestamp=datetime.utcnow(),
    )


@router.get("/monitors", response_model=MonitorsResponse)
async def get_monitors(
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Active monitors with their latest status."""
    try:
        monitors = await get_cached_monitors(cache, db)
    except SQLAlchemyError as e:
        logger.error(f"[API /infra/monitors] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch monitors")

    return MonitorsResponse(
        monitors=[MonitorStatusItem(**asdict(m)) for m in monitors],
        timestamp=datetime.utcnow(),
    )


@router.post("/revalidate", dependencies=[Depends(require_cron_secret)])
async def revalidate(cache: ReadCache = Depends(get_read_cache)):
    """Drop all cached dashboard data so the next reads recompute."""
    dropped = invalidate_infra_cache(cache)
    return {"success": True, "invalidated": dropped}
