"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import cron_router, infra_router
from .services.scheduler import scheduler_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting infrawatch")

    await init_db()
    logger.info("Database initialized")

    if settings.sync_scheduler_enabled:
        scheduler_service.start()

    yield

    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="infrawatch",
        description="Uptime monitor sync, availability stats and incident history",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Dashboard reads come from the site frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(cron_router)
    app.include_router(infra_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler": scheduler_service.running,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
