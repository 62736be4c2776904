"""Sync trigger schemas."""
from pydantic import BaseModel, ConfigDict, Field


class SyncSummaryBlock(BaseModel):
    """Counts from one sync run."""
    model_config = ConfigDict(populate_by_name=True)

    total_monitors: int = Field(alias="totalMonitors")
    monitors_synced: int = Field(alias="monitorsSynced")
    monitors_failed: int = Field(alias="monitorsFailed")
    heartbeats_stored: int = Field(alias="heartbeatsStored")
    heartbeats_errors: int = Field(alias="heartbeatsErrors")
    old_heartbeats_deleted: int = Field(alias="oldHeartbeatsDeleted")


class SyncResponse(BaseModel):
    """Result of a triggered sync."""
    success: bool
    duration: int  # milliseconds
    summary: SyncSummaryBlock
