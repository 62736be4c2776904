"""Incident detector - derives outages from the raw heartbeat stream.

Incidents are never stored. Each read takes the most recent DOWN
heartbeats, groups consecutive samples of one monitor into incidents,
then checks the heartbeat that followed each incident to decide whether
it has recovered.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Heartbeat, STATUS_DOWN
from ..utils.time_utils import minutes_between

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_GAP_MINUTES = 30
# Only the newest incidents get the follow-up heartbeat lookup
RESOLUTION_WINDOW = 10


@dataclass
class DownSample:
    """A DOWN heartbeat with the monitor fields needed for grouping."""
    monitor_id: int
    monitor_name: str
    timestamp: datetime
    message: Optional[str] = None


@dataclass
class Incident:
    """A contiguous run of DOWN samples for one monitor.

    ``end_time`` is the newest DOWN sample until the incident is resolved,
    then the timestamp of the heartbeat that ended it.
    """
    monitor_id: int
    monitor_name: str
    start_time: datetime
    end_time: Optional[datetime]
    duration: int  # minutes
    count: int
    message: Optional[str] = None
    is_ongoing: bool = True

    @property
    def resolved(self) -> bool:
        return not self.is_ongoing


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp a requested result count to [1, MAX_LIMIT]."""
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(int(limit), MAX_LIMIT))


def group_incidents(samples: Iterable[DownSample], gap_minutes: int = DEFAULT_GAP_MINUTES) -> List[Incident]:
    """Group DOWN samples (newest first) into incidents in a single pass.

    A new incident starts when the monitor changes or when the sample is
    more than ``gap_minutes`` older than the current incident's earliest
    sample. Otherwise the sample extends the current incident backwards.
    """
    gap = timedelta(minutes=gap_minutes)
    incidents: List[Incident] = []
    current: Optional[Incident] = None

    for sample in samples:
        if (
            current is None
            or current.monitor_id != sample.monitor_id
            or current.start_time - sample.timestamp > gap
        ):
            current = Incident(
                monitor_id=sample.monitor_id,
                monitor_name=sample.monitor_name,
                start_time=sample.timestamp,
                end_time=sample.timestamp,
                duration=0,
                count=1,
                message=sample.message,
            )
            incidents.append(current)
        else:
            current.start_time = sample.timestamp
            current.count += 1
            current.duration = minutes_between(current.start_time, current.end_time)

    return incidents


async def find_next_heartbeat(session: AsyncSession, monitor_id: int, after: datetime) -> Optional[Heartbeat]:
    """First heartbeat for a monitor strictly after ``after``."""
    result = await session.execute(
        select(Heartbeat)
        .where(
            Heartbeat.monitor_id == monitor_id,
            Heartbeat.timestamp > after,
        )
        .order_by(Heartbeat.timestamp.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_incidents(
    session: AsyncSession,
    incidents: List[Incident],
    window: int = RESOLUTION_WINDOW,
) -> List[Incident]:
    """Decide which of the newest ``window`` incidents have recovered.

    The heartbeat right after an incident's last DOWN sample settles it:
    none yet, or another DOWN, means ongoing; anything else resolves the
    incident at that heartbeat's timestamp.

    Returns:
        The checked incidents (at most ``window``), newest first
    """
    checked = incidents[:window]
    for incident in checked:
        last_down = incident.end_time or incident.start_time
        following = await find_next_heartbeat(session, incident.monitor_id, last_down)

        if following is None or following.status == STATUS_DOWN:
            incident.is_ongoing = True
            continue

        incident.is_ongoing = False
        incident.end_time = following.timestamp
        incident.duration = minutes_between(incident.start_time, following.timestamp)

    return checked


async def fetch_down_samples(session: AsyncSession, limit: int) -> List[DownSample]:
    """Newest DOWN heartbeats across all monitors, newest first."""
    result = await session.execute(
        select(Heartbeat)
        .options(selectinload(Heartbeat.monitor))
        .where(Heartbeat.status == STATUS_DOWN)
        .order_by(Heartbeat.timestamp.desc(), Heartbeat.monitor_id)
        .limit(limit)
    )
    return [
        DownSample(
            monitor_id=hb.monitor_id,
            monitor_name=hb.monitor.name,
            timestamp=hb.timestamp,
            message=hb.message,
        )
        for hb in result.scalars().all()
    ]


async def detect_incidents(
    session: AsyncSession,
    limit: Optional[int] = DEFAULT_LIMIT,
    gap_minutes: int = DEFAULT_GAP_MINUTES,
) -> Tuple[List[Incident], int]:
    """Build recent incidents from the heartbeat store.

    Returns:
        (resolved incidents, newest first; total number of incident groups)
    """
    samples = await fetch_down_samples(session, clamp_limit(limit))
    groups = group_incidents(samples, gap_minutes)
    incidents = await resolve_incidents(session, groups)
    logger.debug(f"Derived {len(groups)} incidents from {len(samples)} DOWN heartbeats")
    return incidents, len(groups)
