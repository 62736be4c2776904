"""Heartbeat model - status samples reported by the monitoring source."""
from datetime import datetime
from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


STATUS_UP = "UP"
STATUS_DOWN = "DOWN"
STATUS_PENDING = "PENDING"


class Heartbeat(Base):
    """One status sample for a monitor, timestamped by the source clock.

    (monitor_id, timestamp) is unique so re-ingesting the same sample is a
    no-op. Rows are never updated; the retention purge deletes them.
    """

    __tablename__ = "heartbeats"
    __table_args__ = (
        UniqueConstraint("monitor_id", "timestamp", name="uq_heartbeats_monitor_timestamp"),
        Index("ix_heartbeats_status_timestamp", "status", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False)  # UP, DOWN, PENDING
    response_time = Column(Float, nullable=True)  # ms, NULL if unknown
    status_code = Column(Integer, nullable=True)
    message = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationship
    monitor = relationship("Monitor", back_populates="heartbeats")
