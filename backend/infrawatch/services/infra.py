"""Cached read models for the infrastructure dashboard.

Each computation is cached for the configured TTL under its own name and
shares the ``infra-data`` tag, so ``invalidate_infra_cache`` forces all of
them to recompute on the next read.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import Monitor, STATUS_PENDING
from .cache import ReadCache
from .incidents import Incident, clamp_limit, detect_incidents
from .stats import StatsSnapshot, compute_stats, latest_heartbeats

INFRA_TAG = "infra-data"

read_cache = ReadCache(ttl_seconds=settings.cache_ttl_seconds)


def get_read_cache() -> ReadCache:
    """Dependency returning the shared read cache."""
    return read_cache


@dataclass
class MonitorWithStatus:
    """An active monitor with its latest heartbeat."""
    id: int
    name: str
    type: str
    target: str
    status: str  # UP, DOWN, PENDING
    response_time: Optional[float] = None
    last_check: Optional[datetime] = None


async def fetch_monitors_with_status(session: AsyncSession) -> List[MonitorWithStatus]:
    """Active monitors ordered by name, each with its latest status."""
    result = await session.execute(
        select(Monitor).where(Monitor.is_active.is_(True)).order_by(Monitor.name)
    )
    monitors = result.scalars().all()
    latest = await latest_heartbeats(session, [m.id for m in monitors]) if monitors else {}

    items = []
    for monitor in monitors:
        last = latest.get(monitor.id)
        items.append(MonitorWithStatus(
            id=monitor.id,
            name=monitor.name,
            type=monitor.type,
            target=monitor.target,
            status=last.status if last else STATUS_PENDING,
            response_time=last.response_time if last else None,
            last_check=last.timestamp if last else None,
        ))
    return items


async def get_cached_monitors(cache: ReadCache, session: AsyncSession) -> List[MonitorWithStatus]:
    return await cache.get_or_compute(
        "infra-monitors",
        lambda: fetch_monitors_with_status(session),
        tags=[INFRA_TAG],
    )


async def get_cached_stats(cache: ReadCache, session: AsyncSession) -> StatsSnapshot:
    return await cache.get_or_compute(
        "infra-stats",
        lambda: compute_stats(session),
        tags=[INFRA_TAG],
    )


async def get_cached_incidents(
    cache: ReadCache,
    session: AsyncSession,
    limit: Optional[int] = None,
) -> Tuple[List[Incident], int]:
    limit = clamp_limit(limit)
    return await cache.get_or_compute(
        "infra-incidents",
        lambda: detect_incidents(session, limit, settings.incident_gap_minutes),
        key=limit,
        tags=[INFRA_TAG],
    )


def invalidate_infra_cache(cache: ReadCache = read_cache) -> int:
    """Force every infra read model to recompute on its next read."""
    return cache.invalidate_tag(INFRA_TAG)
