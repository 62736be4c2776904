"""Database models."""
from .monitor import Monitor, MONITOR_TYPES
from .heartbeat import Heartbeat, STATUS_UP, STATUS_DOWN, STATUS_PENDING

__all__ = ["Monitor", "MONITOR_TYPES", "Heartbeat", "STATUS_UP", "STATUS_DOWN", "STATUS_PENDING"]
