"""Stats aggregator - rolling uptime and latency per monitor.

Uptime for a window is UP samples / all samples * 100, rounded half up to 2
decimals, and 0 when the window is empty. The overall figure is the plain
mean of per-monitor uptimes, not weighted by sample count, which is what
existing dashboards show.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Monitor, Heartbeat, STATUS_UP, STATUS_DOWN, STATUS_PENDING

logger = logging.getLogger(__name__)

WINDOW_24H = timedelta(hours=24)
WINDOW_30D = timedelta(days=30)


@dataclass
class MonitorStats:
    """Availability figures for one monitor."""
    monitor_id: int
    monitor_name: str
    uptime_24h: float
    uptime_30d: float
    avg_response_time: Optional[int]
    current_status: str
    last_response_time: Optional[float]


@dataclass
class OverallStats:
    """Aggregate figures across all active monitors."""
    uptime_24h: float
    uptime_30d: float
    total_monitors: int
    active_monitors: int
    down_monitors: int


@dataclass
class StatsSnapshot:
    overall: OverallStats
    monitors: List[MonitorStats] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.utcnow)


def round_percent(value: float) -> float:
    """Round to 2 decimals with halves going up, as the dashboards display it."""
    return math.floor(value * 100 + 0.5) / 100


def uptime_percent(up_count: int, total_count: int) -> float:
    """Percentage of UP samples, 0 for an empty window."""
    if total_count <= 0:
        return 0.0
    return round_percent(up_count / total_count * 100)


def mean_uptime(values: Sequence[float]) -> float:
    """Unweighted mean of per-monitor uptimes."""
    if not values:
        return 0.0
    return round_percent(sum(values) / len(values))


async def _status_counts(
    session: AsyncSession,
    monitor_ids: List[int],
    since: datetime,
) -> Dict[int, Dict[str, int]]:
    """Heartbeat counts per monitor and status from ``since`` onwards."""
    result = await session.execute(
        select(Heartbeat.monitor_id, Heartbeat.status, func.count(Heartbeat.id))
        .where(
            Heartbeat.monitor_id.in_(monitor_ids),
            Heartbeat.timestamp >= since,
        )
        .group_by(Heartbeat.monitor_id, Heartbeat.status)
    )
    counts: Dict[int, Dict[str, int]] = {}
    for monitor_id, status, count in result.all():
        counts.setdefault(monitor_id, {})[status] = count
    return counts


async def _average_response_times(
    session: AsyncSession,
    monitor_ids: List[int],
    since: datetime,
) -> Dict[int, float]:
    """Mean of known, positive response times per monitor."""
    result = await session.execute(
        select(Heartbeat.monitor_id, func.avg(Heartbeat.response_time))
        .where(
            Heartbeat.monitor_id.in_(monitor_ids),
            Heartbeat.timestamp >= since,
            Heartbeat.response_time.is_not(None),
            Heartbeat.response_time > 0,
        )
        .group_by(Heartbeat.monitor_id)
    )
    return {monitor_id: avg for monitor_id, avg in result.all() if avg is not None}


async def latest_heartbeats(session: AsyncSession, monitor_ids: List[int]) -> Dict[int, Heartbeat]:
    """Most recent heartbeat per monitor, by source timestamp."""
    latest = (
        select(Heartbeat.monitor_id, func.max(Heartbeat.timestamp).label("latest"))
        .where(Heartbeat.monitor_id.in_(monitor_ids))
        .group_by(Heartbeat.monitor_id)
        .subquery()
    )
    result = await session.execute(
        select(Heartbeat).join(
            latest,
            and_(
                Heartbeat.monitor_id == latest.c.monitor_id,
                Heartbeat.timestamp == latest.c.latest,
            ),
        )
    )
    return {hb.monitor_id: hb for hb in result.scalars().all()}


async def compute_stats(session: AsyncSession, now: Optional[datetime] = None) -> StatsSnapshot:
    """Compute 24h/30d uptime, latency and current status for every active monitor."""
    now = now or datetime.utcnow()

    result = await session.execute(
        select(Monitor.id, Monitor.name)
        .where(Monitor.is_active.is_(True))
        .order_by(Monitor.name)
    )
    monitors = result.all()
    monitor_ids = [m.id for m in monitors]

    if not monitor_ids:
        return StatsSnapshot(
            overall=OverallStats(0.0, 0.0, 0, 0, 0),
            generated_at=now,
        )

    counts_24h = await _status_counts(session, monitor_ids, now - WINDOW_24H)
    counts_30d = await _status_counts(session, monitor_ids, now - WINDOW_30D)
    averages = await _average_response_times(session, monitor_ids, now - WINDOW_24H)
    latest = await latest_heartbeats(session, monitor_ids)

    monitor_stats = []
    for monitor_id, name in monitors:
        by_status_24h = counts_24h.get(monitor_id, {})
        by_status_30d = counts_30d.get(monitor_id, {})
        last = latest.get(monitor_id)
        avg = averages.get(monitor_id)

        monitor_stats.append(MonitorStats(
            monitor_id=monitor_id,
            monitor_name=name,
            uptime_24h=uptime_percent(by_status_24h.get(STATUS_UP, 0), sum(by_status_24h.values())),
            uptime_30d=uptime_percent(by_status_30d.get(STATUS_UP, 0), sum(by_status_30d.values())),
            avg_response_time=int(avg + 0.5) if avg is not None else None,
            current_status=last.status if last else STATUS_PENDING,
            last_response_time=last.response_time if last else None,
        ))

    overall = OverallStats(
        uptime_24h=mean_uptime([s.uptime_24h for s in monitor_stats]),
        uptime_30d=mean_uptime([s.uptime_30d for s in monitor_stats]),
        total_monitors=len(monitor_stats),
        active_monitors=sum(1 for s in monitor_stats if s.current_status == STATUS_UP),
        down_monitors=sum(1 for s in monitor_stats if s.current_status == STATUS_DOWN),
    )
    logger.debug(f"Computed stats for {len(monitor_stats)} monitors")
    return StatsSnapshot(overall=overall, monitors=monitor_stats, generated_at=now)
