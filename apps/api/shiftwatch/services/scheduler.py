"""Background job scheduler.

APScheduler-based runner for the shift urgency monitor and the automatic
alert escalation check. Both jobs are safe to overlap with runs triggered
through the API; ``max_instances=1`` only stops a slow run from piling up
behind itself.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from shiftwatch.config import settings
from shiftwatch.database import get_db_session
from shiftwatch.logging_config import bind_run_id, get_logger
from shiftwatch.services.alert_escalation import process_automatic_escalations
from shiftwatch.services.alert_lifecycle import build_lifecycle_manager
from shiftwatch.services.shift_monitor import build_shift_monitor

logger = get_logger(__name__)

# Process-wide instance; None until start_scheduler()
scheduler: AsyncIOScheduler | None = None


async def run_shift_monitor() -> None:
    """Scan upcoming shifts and raise urgent alerts for the ones at risk."""
    with bind_run_id("monitor"):
        logger.info("Starting scheduled shift urgency monitor")
        try:
            async with get_db_session() as db:
                result = await build_shift_monitor(db).monitor_shifts()
        except Exception as e:
            logger.exception("Unexpected error in shift urgency monitor", error=str(e))
            return

        if not result.success:
            logger.error(
                "Scheduled shift urgency monitor failed",
                error_code=result.error_code.value,
                error=result.error.message,
            )
            return

        logger.info("Scheduled shift urgency monitor completed", **result.data.as_dict())


async def run_alert_escalations() -> None:
    """Escalate active alerts that have gone unacknowledged for too long."""
    with bind_run_id("escalation"):
        logger.info("Starting scheduled alert escalation check")
        try:
            async with get_db_session() as db:
                result = await process_automatic_escalations(build_lifecycle_manager(db))
        except Exception as e:
            logger.exception("Unexpected error in alert escalation check", error=str(e))
            return

        if not result.success:
            logger.error(
                "Scheduled alert escalation check failed",
                error_code=result.error_code.value,
                error=result.error.message,
            )
            return

        logger.info(
            "Scheduled alert escalation check completed",
            checked=result.data.checked,
            escalated=result.data.escalated,
            failed=result.data.failed,
        )


def start_scheduler() -> AsyncIOScheduler:
    """Register the monitor and escalation jobs and start the scheduler.

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()

    if settings.monitor_enabled:
        scheduler.add_job(
            run_shift_monitor,
            trigger=IntervalTrigger(minutes=settings.monitor_interval_minutes),
            id="shift_urgency_monitor",
            name="Shift Urgency Monitor",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(
            "Scheduled shift urgency monitor job",
            interval_minutes=settings.monitor_interval_minutes,
        )

    if settings.escalation_check_enabled:
        scheduler.add_job(
            run_alert_escalations,
            trigger=IntervalTrigger(minutes=settings.escalation_check_interval_minutes),
            id="urgent_alert_escalation",
            name="Urgent Alert Escalation Check",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(
            "Scheduled alert escalation job",
            interval_minutes=settings.escalation_check_interval_minutes,
        )

    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def stop_scheduler() -> None:
    """Shut the scheduler down without waiting for running jobs."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    return scheduler


@asynccontextmanager
async def scheduler_lifespan() -> AsyncGenerator[None, None]:
    """Start the scheduler for the duration of the block (FastAPI lifespan)."""
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()
