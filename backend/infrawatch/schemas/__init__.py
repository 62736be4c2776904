"""Pydantic schemas for API request/response models."""
from .infra import (
    MonitorStatsItem,
    OverallStatsBlock,
    StatsResponse,
    IncidentItem,
    IncidentsResponse,
    MonitorStatusItem,
    MonitorsResponse,
)
from .sync import (
    SyncSummaryBlock,
    SyncResponse,
)

__all__ = [
    "MonitorStatsItem",
    "OverallStatsBlock",
    "StatsResponse",
    "IncidentItem",
    "IncidentsResponse",
    "MonitorStatusItem",
    "MonitorsResponse",
    "SyncSummaryBlock",
    "SyncResponse",
]
