"""Shiftwatch FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shiftwatch import __version__
from shiftwatch.config import settings
from shiftwatch.database import close_database
from shiftwatch.logging_config import get_logger, setup_logging
from shiftwatch.middleware import CorrelationIdMiddleware
from shiftwatch.routers import health, urgent_alerts
from shiftwatch.services.scheduler import scheduler_lifespan

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Schema is managed by `alembic upgrade head`, run before the server starts
    logger.info("Shiftwatch API starting", version=__version__)
    async with scheduler_lifespan():
        yield
    await close_database()
    logger.info("Shiftwatch API stopped")


app = FastAPI(
    title="Shiftwatch API",
    description="Shift urgency monitoring and alert escalation",
    version=__version__,
    lifespan=lifespan,
)

# Starlette runs the last-added middleware first
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(urgent_alerts.router)


@app.get("/")
async def root() -> dict[str, Any]:
    return {
        "name": "Shiftwatch API",
        "version": __version__,
        "docs": "/docs",
    }
