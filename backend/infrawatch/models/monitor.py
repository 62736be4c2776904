"""Monitor model - targets watched by the upstream monitoring source."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


# Target types accepted from upstream; anything else is stored as HTTP
MONITOR_TYPES = ("HTTP", "TCP", "PING", "DNS", "KEYWORD")


class Monitor(Base):
    """A monitored target, mirrored from the upstream source by external id.

    Rows are only ever created or updated by the sync upsert. The sync path
    never deletes a monitor, it can only flip ``is_active``.
    """

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="HTTP")  # HTTP, TCP, PING, DNS, KEYWORD
    target = Column(String, nullable=False, default="")  # URL/hostname, may be empty
    check_interval = Column(Integer, nullable=False, default=60)  # seconds
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    heartbeats = relationship("Heartbeat", back_populates="monitor", cascade="all, delete-orphan")
