"""Infrastructure dashboard schemas.

Field names are snake_case in Python and camelCase on the wire. Stored
timestamps are naive UTC; they leave the API marked as UTC (``...Z``).
"""
from datetime import datetime, timezone
from typing import Annotated, List, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """Serializes by alias, accepts either name on input."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class MonitorStatsItem(CamelModel):
    """Uptime and latency for one monitor."""
    monitor_id: int = Field(alias="monitorId")
    monitor_name: str = Field(alias="monitorName")
    uptime_24h: float = Field(alias="uptime24h")
    uptime_30d: float = Field(alias="uptime30d")
    avg_response_time: Optional[int] = Field(None, alias="avgResponseTime")
    current_status: str = Field(alias="currentStatus")  # UP, DOWN, PENDING
    last_response_time: Optional[float] = Field(None, alias="lastResponseTime")


class OverallStatsBlock(CamelModel):
    """Aggregate uptime across active monitors."""
    uptime_24h: float = Field(alias="uptime24h")
    uptime_30d: float = Field(alias="uptime30d")
    total_monitors: int = Field(alias="totalMonitors")
    active_monitors: int = Field(alias="activeMonitors")
    down_monitors: int = Field(alias="downMonitors")


class StatsResponse(CamelModel):
    success: bool = True
    overall: OverallStatsBlock
    monitors: List[MonitorStatsItem]
    timestamp: UtcDatetime


class IncidentItem(CamelModel):
    """A derived outage."""
    monitor_id: int = Field(alias="monitorId")
    monitor_name: str = Field(alias="monitorName")
    start_time: UtcDatetime = Field(alias="startTime")
    end_time: Optional[UtcDatetime] = Field(None, alias="endTime")
    duration: int  # minutes
    message: Optional[str] = None
    count: int
    is_ongoing: bool = Field(alias="isOngoing")
    resolved: bool


class IncidentsResponse(CamelModel):
    success: bool = True
    incidents: List[IncidentItem]
    total_count: int = Field(alias="totalCount")
    timestamp: UtcDatetime


class MonitorStatusItem(CamelModel):
    """An active monitor with its latest heartbeat."""
    id: int
    name: str
    type: str
    target: str
    status: str
    response_time: Optional[float] = Field(None, alias="responseTime")
    last_check: Optional[UtcDatetime] = Field(None, alias="lastCheck")


class MonitorsResponse(CamelModel):
    success: bool = True
    monitors: List[MonitorStatusItem]
    timestamp: UtcDatetime
