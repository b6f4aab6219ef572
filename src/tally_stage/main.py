# src/tally_stage/main.py
"""Main entry point for the Tally Stage service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware

from tally_stage.api.v1 import rankings_router, tally_router
from tally_stage.api.v1.dependencies import build_scheduler
from tally_stage.core.settings import settings
from tally_stage.services.scheduler import TallyScheduler

logging.getLogger("tally_stage").setLevel(settings.log_level.upper())

# Initialize FastAPI app
app = FastAPI(
    title="Tally Stage API",
    description="Vote aggregation and ranking for burn-to-vote discussions",
    version=settings.app_version,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(tally_router, prefix="/api/v1")
app.include_router(rankings_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    scheduler: TallyScheduler | None = getattr(app.state, "tally_scheduler", None)
    if scheduler is None:
        scheduler = build_scheduler()
        app.state.tally_scheduler = scheduler
    if settings.tally_autostart:
        await scheduler.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    scheduler: TallyScheduler | None = getattr(app.state, "tally_scheduler", None)
    if scheduler:
        await scheduler.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Vote aggregation and ranking for burn-to-vote discussions",
        "docs": "/docs",
        "redoc": "/redoc"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("tally_stage.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
