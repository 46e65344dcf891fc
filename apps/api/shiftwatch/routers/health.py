"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from shiftwatch.database import check_database_connection
from shiftwatch.services.scheduler import get_scheduler

router = APIRouter(tags=["Health"])


def _scheduler_state() -> str:
    scheduler = get_scheduler()
    if scheduler is None:
        return "stopped"
    return "running" if scheduler.running else "stopped"


@router.get("/health", response_model=None)
async def health_check() -> JSONResponse:
    """Overall health: database reachability plus background scheduler state.

    503 with ``"status": "degraded"`` when the database is unreachable.
    """
    db_connected = await check_database_connection()
    content = {
        "status": "healthy" if db_connected else "degraded",
        "database": "connected" if db_connected else "disconnected",
        "scheduler": _scheduler_state(),
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK
        if db_connected
        else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=content,
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Liveness probe; never touches external dependencies."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> JSONResponse:
    """Readiness probe: ready only while the alert store's database answers."""
    if await check_database_connection():
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": "connected"},
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "database": "disconnected"},
    )
