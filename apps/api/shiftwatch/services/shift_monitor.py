"""Shift urgency scan.

One run pulls candidate shifts, scores each, and creates alerts for the ones
that qualify and are not already alerted. Runs hold no state between them and
may overlap: the store's create-if-absent keeps a second concurrent run from
duplicating alerts.
"""

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.config import settings
from shiftwatch.core.results import AlertErrorCode, AlertStoreError, ServiceResult
from shiftwatch.logging_config import get_logger
from shiftwatch.models.shift import ShiftStatus
from shiftwatch.models.urgent_shift_alert import AlertStatus
from shiftwatch.schemas.shift import ShiftSnapshot
from shiftwatch.services.alert_lifecycle import (
    AlertCreateData,
    AlertLifecycleManager,
    build_lifecycle_manager,
)
from shiftwatch.services.alert_store import (
    AlertFilters,
    ShiftSource,
    SqlAlchemyShiftSource,
)
from shiftwatch.services.urgency_calculator import (
    MONITOR_HORIZON_HOURS,
    calculate_urgency,
    priority_for_score,
)

logger = get_logger(__name__)

CANDIDATE_SHIFT_STATUSES = (ShiftStatus.UNASSIGNED, ShiftStatus.ASSIGNED)

# An acknowledged alert still covers its shift; only resolution reopens it
OPEN_ALERT_STATUSES = (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)


@dataclass
class MonitorRunSummary:
    """Counts for one monitor run.

    ``monitored`` counts every shift considered. ``skipped`` counts shifts that
    were already alerted (including duplicates lost to a concurrent run);
    ``not_urgent`` counts shifts outside their alert window.
    """

    monitored: int = 0
    alerts_created: int = 0
    skipped: int = 0
    not_urgent: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class ShiftMonitor:
    def __init__(
        self,
        shift_source: ShiftSource,
        manager: AlertLifecycleManager,
        grace_hours: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.shift_source = shift_source
        self.manager = manager
        self.grace_hours = (
            settings.started_shift_grace_hours if grace_hours is None else grace_hours
        )
        self.clock = clock or manager.clock

    async def _load_candidates(self, now: datetime) -> list[ShiftSnapshot]:
        return await asyncio.wait_for(
            self.shift_source.list_candidate_shifts(
                CANDIDATE_SHIFT_STATUSES,
                starts_before=now + timedelta(hours=MONITOR_HORIZON_HOURS),
                starts_after=now - timedelta(hours=self.grace_hours),
            ),
            timeout=self.manager.timeout_seconds,
        )

    async def _load_alerted_shift_ids(self, shifts: list[ShiftSnapshot]) -> set:
        if not shifts:
            return set()
        alerts = await asyncio.wait_for(
            self.manager.store.list_alerts(
                AlertFilters(
                    statuses=OPEN_ALERT_STATUSES,
                    shift_ids=[shift.id for shift in shifts],
                )
            ),
            timeout=self.manager.timeout_seconds,
        )
        return {alert.shift_id for alert in alerts}

    async def monitor_shifts(self) -> ServiceResult[MonitorRunSummary]:
        """Run one scan over the shifts starting within the alert horizon.

        Returns:
            ServiceResult with the run summary, or ``STORE_UNAVAILABLE`` when
            the candidate shifts or their open alerts could not be loaded.
            Failures on individual shifts are counted in ``errors`` and do
            not stop the scan.
        """
        now = self.clock()

        try:
            shifts = await self._load_candidates(now)
            alerted = await self._load_alerted_shift_ids(shifts)
        except (AlertStoreError, TimeoutError) as e:
            logger.error(
                "Shift monitor could not load candidates",
                error=str(e) or type(e).__name__,
            )
            return ServiceResult.fail(
                AlertErrorCode.STORE_UNAVAILABLE,
                "Could not load candidate shifts",
                error=str(e) or type(e).__name__,
            )

        summary = MonitorRunSummary()
        for shift in shifts:
            summary.monitored += 1

            if shift.id in alerted:
                summary.skipped += 1
                continue

            urgency = calculate_urgency(shift, now)
            if not urgency.should_alert:
                summary.not_urgent += 1
                continue

            result = await self.manager.create_alert(
                AlertCreateData(
                    shift_id=shift.id,
                    alert_type=urgency.alert_type,
                    priority=priority_for_score(urgency.urgency_score),
                    hours_until_shift=urgency.hours_until_shift,
                    shift_starts_at=shift.start_time,
                    urgency_score=urgency.urgency_score,
                )
            )

            if result.success:
                summary.alerts_created += 1
                alerted.add(shift.id)
            elif result.error_code == AlertErrorCode.DUPLICATE_ALERT:
                summary.skipped += 1
            else:
                summary.errors += 1
                logger.warning(
                    "Failed to create alert for shift",
                    shift_id=str(shift.id),
                    error_code=result.error_code.value,
                    error=result.error.message,
                )

        logger.info("Shift monitor run completed", **summary.as_dict())
        return ServiceResult.ok(summary)


def build_shift_monitor(db: AsyncSession) -> ShiftMonitor:
    return ShiftMonitor(SqlAlchemyShiftSource(db), build_lifecycle_manager(db))
