"""Services for ingestion, aggregation, incident detection and caching."""
from .uptime_kuma import UptimeKumaClient
from .sync import MonitorSyncJob, SyncState, SyncSummary
from .cache import ReadCache
from .scheduler import SchedulerService

__all__ = ["UptimeKumaClient", "MonitorSyncJob", "SyncState", "SyncSummary", "ReadCache", "SchedulerService"]
