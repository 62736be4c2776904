"""Tests for the monitor sync job."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from infrawatch.exceptions import SourceUnavailableError
from infrawatch.models import Heartbeat, Monitor
from infrawatch.services.stats import compute_stats
from infrawatch.services.sync import MonitorSyncJob, SyncState

from conftest import add_heartbeat, add_monitor

NOW = datetime(2024, 1, 1, 1, 0, 0)


def beat(status, minutes, ping=100, msg=""):
    ts = datetime(2024, 1, 1) + timedelta(minutes=minutes)
    return {"status": status, "time": ts.isoformat() + "Z", "ping": ping, "msg": msg}


async def count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def test_scenario_single_monitor_single_sample(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", url="https://x", type="HTTP", interval=60, active=True,
                     heartbeats=[{"status": 1, "time": "2024-01-01T00:00:00Z", "ping": 120}])

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory).run(now=NOW)

    assert summary.total_monitors == 1
    assert summary.monitors_synced == 1
    assert summary.monitors_failed == 0
    assert summary.heartbeats_stored == 1
    assert summary.heartbeats_errors == 0

    monitor = (await session.execute(select(Monitor))).scalar_one()
    assert monitor.external_id == "m1"
    assert monitor.name == "API"
    assert monitor.target == "https://x"
    assert monitor.type == "HTTP"
    assert monitor.check_interval == 60
    assert monitor.is_active is True

    within_day = await compute_stats(session, now=datetime(2024, 1, 1, 6, 0))
    assert within_day.monitors[0].current_status == "UP"
    assert within_day.monitors[0].uptime_24h == 100.0

    days_later = await compute_stats(session, now=datetime(2024, 1, 3, 0, 0))
    assert days_later.monitors[0].current_status == "UP"
    assert days_later.monitors[0].uptime_24h == 0.0
    assert days_later.monitors[0].uptime_30d == 100.0


async def test_sync_is_idempotent(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, 0), beat(0, 1), beat(1, 2)])
    kuma.add_monitor("m2", "Web", heartbeats=[beat(1, 0)])

    async with kuma.client() as client:
        job = MonitorSyncJob(client, session_factory)
        first = await job.run(now=NOW)
        second = await job.run(now=NOW)

    assert first.heartbeats_stored == 4
    assert second.heartbeats_stored == 0
    assert second.heartbeats_errors == 0
    assert second.monitors_synced == 2
    assert await count(session, Monitor) == 2
    assert await count(session, Heartbeat) == 4


async def test_upsert_updates_mutable_fields(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", description="first")
    async with kuma.client() as client:
        await MonitorSyncJob(client, session_factory).run(now=NOW)

    kuma.monitors[0].update({"name": "API v2", "type": "keyword", "url": "https://y",
                             "interval": 30, "active": False, "description": "second"})
    async with kuma.client() as client:
        await MonitorSyncJob(client, session_factory).run(now=NOW + timedelta(minutes=5))

    monitors = (await session.execute(select(Monitor))).scalars().all()
    assert len(monitors) == 1
    monitor = monitors[0]
    assert monitor.name == "API v2"
    assert monitor.type == "KEYWORD"
    assert monitor.target == "https://y"
    assert monitor.check_interval == 30
    assert monitor.is_active is False
    assert monitor.description == "second"
    assert monitor.updated_at == NOW + timedelta(minutes=5)


async def test_failed_heartbeat_fetch_does_not_affect_other_monitors(kuma, session_factory, session):
    kuma.add_monitor("a", "Alpha", heartbeats=[beat(1, 0)])
    kuma.add_monitor("b", "Bravo", heartbeats=[beat(1, 0), beat(1, 1)])
    kuma.add_monitor("c", "Charlie", heartbeats=[beat(0, 0)])
    kuma.failing_heartbeats.add("a")

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory, max_concurrency=2).run(now=NOW)

    assert summary.monitors_synced == 3
    assert summary.heartbeats_stored == 3
    assert summary.heartbeats_errors == 1

    rows = await session.execute(
        select(Monitor.external_id, func.count(Heartbeat.id))
        .join(Heartbeat, Heartbeat.monitor_id == Monitor.id)
        .group_by(Monitor.external_id)
    )
    assert dict(rows.all()) == {"b": 2, "c": 1}


async def test_malformed_monitors_count_as_failed(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, 0)])
    kuma.monitors.append({"name": "no id", "url": "https://z"})
    kuma.add_monitor("m3", "Slow", interval="fast", heartbeats=[beat(1, 0)])

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory).run(now=NOW)

    assert summary.total_monitors == 3
    assert summary.monitors_synced == 1
    assert summary.monitors_failed == 2
    assert summary.heartbeats_stored == 1
    external_ids = (await session.execute(select(Monitor.external_id))).scalars().all()
    assert external_ids == ["m1"]


async def test_string_active_flag_deactivates_monitor(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", active="false")

    async with kuma.client() as client:
        await MonitorSyncJob(client, session_factory).run(now=NOW)

    monitor = (await session.execute(select(Monitor))).scalar_one()
    assert monitor.is_active is False


async def test_duplicate_samples_are_skipped_silently(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, 0), beat(1, 0), beat(0, 1)])

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory).run(now=NOW)

    assert summary.heartbeats_stored == 2
    assert summary.heartbeats_errors == 0
    assert await count(session, Heartbeat) == 2


async def test_malformed_samples_count_as_errors(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, 0), {"status": 1, "time": "garbage"}])

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory).run(now=NOW)

    assert summary.heartbeats_stored == 1
    assert summary.heartbeats_errors == 1


async def test_unhealthy_source_aborts_without_writes(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, 0)])
    kuma.healthy = False

    async with kuma.client() as client:
        with pytest.raises(SourceUnavailableError):
            await MonitorSyncJob(client, session_factory).run(now=NOW)

    assert await count(session, Monitor) == 0
    assert await count(session, Heartbeat) == 0
    assert [r.url.path for r in kuma.requests] == ["/api/health"]


async def test_unconfigured_source_aborts(kuma, session_factory):
    state = SyncState()
    async with kuma.client(api_key="") as client:
        with pytest.raises(SourceUnavailableError):
            await MonitorSyncJob(client, session_factory).run(state=state, now=NOW)
    assert kuma.requests == []
    assert state.runs == 0


async def test_monitor_listing_failure_aborts(kuma, session_factory, session):
    kuma.monitors_status = 500
    async with kuma.client() as client:
        with pytest.raises(SourceUnavailableError):
            await MonitorSyncJob(client, session_factory).run(now=NOW)
    assert await count(session, Monitor) == 0


async def test_retention_purge_keeps_boundary(kuma, session_factory, session):
    now = datetime(2024, 6, 15, 12, 0, 0)
    cutoff = datetime(2024, 3, 15, 12, 0, 0)
    monitor = await add_monitor(session, "old", "Old")
    await add_heartbeat(session, monitor, cutoff - timedelta(seconds=1))
    await add_heartbeat(session, monitor, cutoff - timedelta(days=40))
    await add_heartbeat(session, monitor, cutoff)
    await add_heartbeat(session, monitor, now - timedelta(hours=1))

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory).run(now=now)

    assert summary.total_monitors == 0
    assert summary.heartbeats_deleted == 2
    remaining = (await session.execute(select(Heartbeat.timestamp).order_by(Heartbeat.timestamp))).scalars().all()
    assert remaining == [cutoff, now - timedelta(hours=1)]
    # The monitor itself is never deleted by the sync path
    assert await count(session, Monitor) == 1


async def test_state_is_updated_after_run(kuma, session_factory):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, 0)])
    state = SyncState()

    async with kuma.client() as client:
        job = MonitorSyncJob(client, session_factory)
        summary = await job.run(state=state, now=NOW)
        await job.run(state=state, now=NOW + timedelta(minutes=5))

    assert state.runs == 2
    assert state.last_run_at == NOW + timedelta(minutes=5)
    assert state.last_cleanup_at == NOW + timedelta(minutes=5)
    assert state.last_summary is not None
    assert state.last_summary is not summary
    assert summary.duration_ms >= 0


async def test_heartbeat_fetch_limit_is_forwarded(kuma, session_factory, session):
    kuma.add_monitor("m1", "API", heartbeats=[beat(1, i) for i in range(10)])

    async with kuma.client() as client:
        summary = await MonitorSyncJob(client, session_factory, heartbeat_limit=4).run(now=NOW)

    assert summary.heartbeats_stored == 4
    heartbeat_requests = [r for r in kuma.requests if r.url.path.endswith("/heartbeats")]
    assert heartbeat_requests[0].url.params["limit"] == "4"
