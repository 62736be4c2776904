"""Uptime Kuma client - reads monitors and heartbeats from the upstream API.

Stateless apart from the pooled HTTP connection. Every call sends the
bearer credential and bypasses caches; every call is time-bounded.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

import httpx

from ..config import settings
from ..exceptions import SourceClientError
from ..models import MONITOR_TYPES, STATUS_UP, STATUS_DOWN, STATUS_PENDING
from ..utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60

_STATUS_CODES = {
    1: STATUS_UP,
    0: STATUS_DOWN,
    2: STATUS_PENDING,
}


@dataclass
class SourceMonitor:
    """A monitor as described by the upstream source."""
    external_id: str
    name: str
    type: str
    target: str
    interval: int = DEFAULT_INTERVAL_SECONDS
    active: bool = True
    description: Optional[str] = None


@dataclass
class SourceHeartbeat:
    """One upstream status sample."""
    status: str  # UP, DOWN, PENDING
    timestamp: datetime
    response_time: Optional[float] = None
    status_code: Optional[int] = None
    message: Optional[str] = None


def map_status(code: Any) -> str:
    """Map an upstream status code (1=up, 0=down, 2=pending) to our status."""
    return _STATUS_CODES.get(code, STATUS_PENDING)


def map_monitor_type(raw: Optional[str]) -> str:
    """Normalise an upstream monitor type; unknown types fall back to HTTP."""
    value = (raw or "").upper()
    return value if value in MONITOR_TYPES else "HTTP"


def parse_active(raw: Any, default: bool = True) -> bool:
    """Read an upstream active flag, which may arrive as a bool, 0/1 or a string."""
    if raw is None:
        return default
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off", ""):
            return False
        raise ValueError(f"Invalid active flag: {raw!r}")
    return bool(raw)


def parse_monitor(data: dict) -> SourceMonitor:
    """Build a SourceMonitor from an upstream monitor object.

    Raises:
        ValueError: If the id is missing or a field has the wrong shape
    """
    if data.get("id") is None:
        raise ValueError("Monitor is missing an id")
    return SourceMonitor(
        external_id=str(data["id"]),
        name=data.get("name") or str(data["id"]),
        type=map_monitor_type(data.get("type")),
        target=data.get("url") or "",
        interval=int(data.get("interval") or DEFAULT_INTERVAL_SECONDS),
        active=parse_active(data.get("active")),
        description=data.get("description"),
    )


def parse_heartbeat(data: dict) -> SourceHeartbeat:
    """Build a SourceHeartbeat from an upstream heartbeat object.

    Raises:
        ValueError: If the timestamp is missing or malformed
    """
    ping = data.get("ping")
    response_time = float(ping) if isinstance(ping, (int, float)) and not isinstance(ping, bool) else None
    if response_time is not None and response_time < 0:
        response_time = None

    return SourceHeartbeat(
        status=map_status(data.get("status")),
        timestamp=parse_timestamp(data.get("time")),
        response_time=response_time,
        status_code=data.get("statusCode"),
        message=data.get("msg") or None,
    )


class UptimeKumaClient:
    """Async client for the Uptime Kuma HTTP API."""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        """True when both the base URL and credential are set."""
        return bool(self.base_url and self.api_key)

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        }

    async def __aenter__(self) -> "UptimeKumaClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        try:
            response = await self._http().get(path, params=params)
        except httpx.TimeoutException as e:
            raise SourceClientError(f"Timed out calling {path}") from e
        except httpx.HTTPError as e:
            raise SourceClientError(f"Request to {path} failed: {e}") from e

        if response.status_code >= 400:
            raise SourceClientError(
                f"Upstream returned an error for {path}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise SourceClientError(
                f"Invalid JSON from {path}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def list_monitors(self) -> List[dict]:
        """Fetch every monitor defined upstream.

        Items are returned unparsed so the caller can count malformed monitors
        as per-monitor failures (see ``parse_monitor``).
        """
        data = await self._get_json("/api/monitors")
        return list(data.get("monitors") or [])

    async def list_heartbeats(self, external_id: str, limit: int = 100) -> List[dict]:
        """Fetch the most recent raw heartbeats for a monitor.

        Items are returned unparsed so the caller can count malformed samples
        as per-heartbeat failures (see ``parse_heartbeat``).
        """
        data = await self._get_json(
            f"/api/monitors/{external_id}/heartbeats",
            params={"limit": limit},
        )
        return list(data.get("heartbeats") or [])

    async def health_check(self) -> bool:
        """Check that the upstream API is reachable and accepts our credential."""
        if not self.configured:
            logger.warning("Uptime Kuma credentials not configured")
            return False

        try:
            response = await self._http().get("/api/health")
        except httpx.HTTPError as e:
            logger.error(f"Failed to validate Uptime Kuma connection: {e}")
            return False

        if not response.is_success:
            logger.error(f"Uptime Kuma health check failed: {response.status_code}")
            return False
        return True


def create_source_client() -> UptimeKumaClient:
    """Build a client from application settings."""
    return UptimeKumaClient(
        base_url=settings.uptime_kuma_url,
        api_key=settings.uptime_kuma_api_key,
        timeout=settings.source_timeout_seconds,
    )
