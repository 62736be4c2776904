"""Monitor registry and heartbeat store access.

Each write here is its own committed unit so that one monitor or one
sample failing never rolls back another. Writes are safe to repeat and
safe under concurrent sync runs: monitors are upserted on their external
id and heartbeats are inserted with ON CONFLICT DO NOTHING on
(monitor_id, timestamp).
"""
import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Monitor, Heartbeat
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import subtract_months
from .uptime_kuma import SourceMonitor, SourceHeartbeat

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(session: AsyncSession):
    """Return the insert construct with ON CONFLICT support for this database, if any."""
    return _DIALECT_INSERTS.get(session.get_bind().dialect.name)


def _monitor_values(source: SourceMonitor) -> dict:
    return {
        "name": source.name,
        "type": source.type,
        "target": source.target,
        "check_interval": source.interval,
        "is_active": source.active,
        "description": source.description,
    }


async def upsert_monitor(session: AsyncSession, source: SourceMonitor, now: datetime) -> int:
    """Create or update the monitor keyed by its external id.

    Returns:
        The internal monitor id
    """
    values = _monitor_values(source)
    insert = _dialect_insert(session)

    if insert is not None:
        stmt = insert(Monitor.__table__).values(
            external_id=source.external_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["external_id"],
            set_={**values, "updated_at": now},
        ).returning(Monitor.__table__.c.id)
        result = await session.execute(stmt)
        monitor_id = result.scalar_one()
    else:
        result = await session.execute(
            select(Monitor).where(Monitor.external_id == source.external_id)
        )
        monitor = result.scalar_one_or_none()
        if monitor is None:
            monitor = Monitor(external_id=source.external_id, created_at=now, **values)
            session.add(monitor)
        else:
            for key, value in values.items():
                setattr(monitor, key, value)
        monitor.updated_at = now
        await session.flush()
        monitor_id = monitor.id

    await retry_on_lock(session.commit)
    return monitor_id


async def insert_heartbeat(session: AsyncSession, monitor_id: int, heartbeat: SourceHeartbeat) -> bool:
    """Store one heartbeat unless a sample with the same timestamp already exists.

    Returns:
        True if a row was written, False if it was a duplicate
    """
    values = {
        "monitor_id": monitor_id,
        "status": heartbeat.status,
        "response_time": heartbeat.response_time,
        "status_code": heartbeat.status_code,
        "message": heartbeat.message,
        "timestamp": heartbeat.timestamp,
        "created_at": datetime.utcnow(),
    }
    insert = _dialect_insert(session)

    if insert is not None:
        stmt = insert(Heartbeat.__table__).values(**values).on_conflict_do_nothing(
            index_elements=["monitor_id", "timestamp"],
        )
        result = await session.execute(stmt)
        inserted = result.rowcount == 1
    else:
        # No ON CONFLICT support, check for the sample explicitly
        existing = await session.execute(
            select(Heartbeat.id).where(
                Heartbeat.monitor_id == monitor_id,
                Heartbeat.timestamp == heartbeat.timestamp,
            )
        )
        if existing.first() is not None:
            return False
        session.add(Heartbeat(**values))
        inserted = True

    await retry_on_lock(session.commit)
    return inserted


def retention_cutoff(now: datetime, months: int) -> datetime:
    """Oldest timestamp kept by the retention purge."""
    return subtract_months(now, months)


async def purge_heartbeats(session: AsyncSession, cutoff: datetime) -> int:
    """Delete every heartbeat strictly older than ``cutoff`` in one statement.

    A heartbeat dated exactly at the cutoff is kept.

    Returns:
        Number of rows deleted
    """
    result = await session.execute(
        delete(Heartbeat.__table__).where(Heartbeat.__table__.c.timestamp < cutoff)
    )
    await retry_on_lock(session.commit)
    deleted = result.rowcount or 0
    logger.info(f"Cleaned up {deleted} heartbeats older than {cutoff.isoformat()}")
    return deleted
