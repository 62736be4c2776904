"""API routers."""
from .cron import router as cron_router
from .infra import router as infra_router

__all__ = ["cron_router", "infra_router"]
