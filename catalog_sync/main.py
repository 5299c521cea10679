"""
Main FastAPI application.

Serves the health check and the admin trigger surface, and runs the
background update worker for the lifetime of the process.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from catalog_sync.core.config import settings
from catalog_sync.core.logging_config import configure_logging
from catalog_sync.errors import AppError, app_error_handler
from catalog_sync.routers import admin_updates, health
from catalog_sync.workers.update_worker import build_default_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the update worker on startup; stop it and close its clients on shutdown."""
    configure_logging()
    logger.info("Starting %s (%s)", settings.APP_NAME, settings.ENVIRONMENT)

    worker = build_default_worker(settings)
    app.state.update_worker = worker
    if settings.UPDATE_WORKER_ENABLED:
        worker.start()

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    await worker.stop()
    await worker.aclose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Website synchronization and structured-extraction pipeline for the university catalog",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(AppError, app_error_handler)

app.include_router(health.router, tags=["Health"])
app.include_router(admin_updates.router)


@app.get("/")
async def root():
    return {"name": settings.APP_NAME, "health": "/health", "admin": "/api/admin/update-now"}
