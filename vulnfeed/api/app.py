"""FastAPI application factory with lifespan management."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vulnfeed.api.routers import vulndb
from vulnfeed.core.config import get_settings
from vulnfeed.core.database import close_engine, get_engine
from vulnfeed.core.graph import close_driver
from vulnfeed.core.logging import configure_logging, get_logger
from vulnfeed.core.registry import get_registry
from vulnfeed.core.scheduler import scheduler_loop
from vulnfeed.core.tasks import cancel_all

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    configure_logging()
    settings = get_settings()
    logger.info("Starting vulnfeed", debug=settings.app_debug)

    # Warm up DB connection pool
    get_engine()

    registry = get_registry()
    logger.info("Language plugins ready", plugins=registry.ids())

    scheduler_task: asyncio.Task | None = None
    if settings.scheduler_enabled:
        scheduler_task = asyncio.create_task(scheduler_loop(), name="vuln-db-scheduler")
        logger.info("Sync scheduler enabled", interval_hours=settings.sync_interval_hours)

    yield

    # Cleanup
    if scheduler_task is not None:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
    await cancel_all()
    await close_driver()
    await close_engine()
    logger.info("vulnfeed stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="vulnfeed",
        description="Vulnerability intelligence ingestion service",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    api_prefix = "/api/v1"
    app.include_router(vulndb.router, prefix=api_prefix)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
