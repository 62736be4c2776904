"""Shared fixtures: a throwaway SQLite database per test and a fake upstream API."""
import os
import tempfile

# Settings are read at import time; keep the default database out of /data
os.environ.setdefault("DATA_PATH", tempfile.mkdtemp(prefix="infrawatch-test-"))
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("UPTIME_KUMA_URL", "http://kuma.test")
os.environ.setdefault("UPTIME_KUMA_API_KEY", "test-api-key")

from datetime import datetime
from typing import Dict, List, Optional, Set

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from infrawatch.database import Base, configure_sqlite
from infrawatch.models import Monitor, Heartbeat
from infrawatch.services.uptime_kuma import UptimeKumaClient

KUMA_URL = "http://kuma.test"
KUMA_KEY = "test-api-key"


@pytest.fixture
async def engine(tmp_path):
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )
    configure_sqlite(db_engine)
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as db:
        yield db


async def add_monitor(
    session: AsyncSession,
    external_id: str,
    name: str,
    is_active: bool = True,
    type: str = "HTTP",
) -> Monitor:
    monitor = Monitor(
        external_id=external_id,
        name=name,
        type=type,
        target=f"https://{external_id}.example",
        check_interval=60,
        is_active=is_active,
    )
    session.add(monitor)
    await session.commit()
    return monitor


async def add_heartbeat(
    session: AsyncSession,
    monitor: Monitor,
    timestamp: datetime,
    status: str = "UP",
    response_time: Optional[float] = None,
    message: Optional[str] = None,
) -> Heartbeat:
    heartbeat = Heartbeat(
        monitor_id=monitor.id,
        status=status,
        response_time=response_time,
        message=message,
        timestamp=timestamp,
    )
    session.add(heartbeat)
    await session.commit()
    return heartbeat


class FakeUptimeKuma:
    """In-memory stand-in for the Uptime Kuma HTTP API, served via httpx.MockTransport."""

    def __init__(self):
        self.monitors: List[dict] = []
        self.heartbeats: Dict[str, List[dict]] = {}
        self.healthy = True
        self.monitors_status = 200
        self.failing_heartbeats: Set[str] = set()
        self.requests: List[httpx.Request] = []

    def add_monitor(self, external_id, name, heartbeats=None, **fields):
        monitor = {"id": external_id, "name": name, "url": f"https://{name.lower()}.example",
                   "type": "http", "interval": 60, "active": True}
        monitor.update(fields)
        self.monitors.append(monitor)
        self.heartbeats[str(external_id)] = list(heartbeats or [])
        return monitor

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {KUMA_KEY}":
            return httpx.Response(401, json={"error": "unauthorized"})

        path = request.url.path
        if path == "/api/health":
            return httpx.Response(200 if self.healthy else 503, json={"ok": self.healthy})
        if path == "/api/monitors":
            if self.monitors_status != 200:
                return httpx.Response(self.monitors_status, text="upstream exploded")
            return httpx.Response(200, json={"monitors": self.monitors})
        if path.startswith("/api/monitors/") and path.endswith("/heartbeats"):
            external_id = path.split("/")[3]
            if external_id in self.failing_heartbeats:
                return httpx.Response(500, text="heartbeat store unavailable")
            limit = int(request.url.params.get("limit", 100))
            return httpx.Response(200, json={"heartbeats": self.heartbeats.get(external_id, [])[:limit]})
        return httpx.Response(404, json={"error": "not found"})

    def client(self, base_url: str = KUMA_URL, api_key: str = KUMA_KEY) -> UptimeKumaClient:
        return UptimeKumaClient(base_url, api_key, timeout=5, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def kuma():
    return FakeUptimeKuma()
