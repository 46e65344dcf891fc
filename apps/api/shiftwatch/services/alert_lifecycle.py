"""Urgent alert lifecycle.

Enforces the alert state machine:

    (none) --create--> active --acknowledge--> acknowledged
    active | acknowledged --resolve--> resolved
    active | acknowledged --escalate--> same status, level + 1 (max 5)

Every operation returns a ``ServiceResult``; store failures and timeouts are
logged and surfaced as ``STORE_UNAVAILABLE`` instead of raised.
"""

import asyncio
import dataclasses
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.config import settings
from shiftwatch.core.results import AlertErrorCode, AlertStoreError, ServiceResult
from shiftwatch.logging_config import get_logger
from shiftwatch.models.shift import ShiftStatus
from shiftwatch.models.urgent_shift_alert import (
    MAX_ESCALATION_LEVEL,
    AlertPriority,
    AlertStatus,
    AlertType,
    UrgentShiftAlert,
)
from shiftwatch.services.alert_metrics import AlertMetrics, calculate_alert_metrics
from shiftwatch.services.alert_notifier import (
    AlertDispatcher,
    AlertEvent,
    AlertEventKind,
    LoggingAlertDispatcher,
    dispatch_alert_event,
)
from shiftwatch.services.alert_store import (
    AlertFilters,
    AlertStore,
    SqlAlchemyAlertStore,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Actor recorded for transitions made by the engine itself
SYSTEM_ACTOR = "system"

# Shift statuses that make each alert type obsolete
RESOLVING_SHIFT_STATUSES: dict[AlertType, frozenset[ShiftStatus]] = {
    AlertType.UNASSIGNED_24H: frozenset(
        {
            ShiftStatus.ASSIGNED,
            ShiftStatus.CONFIRMED,
            ShiftStatus.IN_PROGRESS,
            ShiftStatus.COMPLETED,
            ShiftStatus.CANCELLED,
        }
    ),
    AlertType.UNCONFIRMED_12H: frozenset(
        {
            ShiftStatus.CONFIRMED,
            ShiftStatus.IN_PROGRESS,
            ShiftStatus.COMPLETED,
            ShiftStatus.CANCELLED,
        }
    ),
}

_STORE_ERRORS = (AlertStoreError, SQLAlchemyError, TimeoutError)


@dataclass
class AlertCreateData:
    """Snapshot of a qualifying shift, as computed by the monitor."""

    shift_id: uuid.UUID
    alert_type: AlertType
    priority: AlertPriority
    hours_until_shift: float
    shift_starts_at: datetime
    urgency_score: float = 0.0


@dataclass
class EscalationRequest:
    """Escalate one alert by a level.

    ``new_priority`` is applied only when it ranks above the alert's current
    priority; escalation never lowers priority.

    ``expected_level`` and ``require_active`` are checked against the row read
    under lock. A mismatch fails with ``INVALID_TRANSITION``, so a decision
    made from an earlier read cannot escalate an alert that has since been
    acknowledged or escalated by someone else.
    """

    alert_id: uuid.UUID
    escalated_by: str
    reason: str | None = None
    new_priority: AlertPriority | None = None
    expected_level: int | None = None
    require_active: bool = False


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AlertLifecycleManager:
    """Creates alerts and applies operator and system transitions to them."""

    def __init__(
        self,
        store: AlertStore,
        dispatchers: Sequence[AlertDispatcher] = (),
        timeout_seconds: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.dispatchers = list(dispatchers)
        self.timeout_seconds = (
            settings.store_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.clock = clock

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)

    def _store_failure(self, operation: str, error: Exception, **context) -> ServiceResult:
        logger.error(
            "Alert store unavailable",
            operation=operation,
            error=str(error) or type(error).__name__,
            **context,
        )
        return ServiceResult.fail(
            AlertErrorCode.STORE_UNAVAILABLE,
            f"Alert store unavailable during {operation}",
            error=str(error) or type(error).__name__,
        )

    async def _notify(self, kind: AlertEventKind, alert: UrgentShiftAlert) -> None:
        if self.dispatchers:
            await dispatch_alert_event(self.dispatchers, AlertEvent(kind=kind, alert=alert))

    async def create_alert(self, data: AlertCreateData) -> ServiceResult[UrgentShiftAlert]:
        """Create an active alert unless the shift already has one."""
        now = self.clock()
        alert = UrgentShiftAlert(
            id=uuid.uuid4(),
            shift_id=data.shift_id,
            alert_type=data.alert_type,
            priority=data.priority,
            status=AlertStatus.ACTIVE,
            hours_until_shift=data.hours_until_shift,
            urgency_score=data.urgency_score,
            shift_starts_at=data.shift_starts_at,
            escalation_level=1,
            created_at=now,
            updated_at=now,
        )

        try:
            created = await self._call(self.store.create_if_absent(alert))
        except _STORE_ERRORS as e:
            return self._store_failure("create_alert", e, shift_id=str(data.shift_id))

        if created is None:
            logger.info(
                "Skipped duplicate urgent alert",
                shift_id=str(data.shift_id),
                alert_type=data.alert_type.value,
            )
            return ServiceResult.fail(
                AlertErrorCode.DUPLICATE_ALERT,
                f"An active alert already exists for shift {data.shift_id}",
                shift_id=str(data.shift_id),
            )

        logger.info(
            "Urgent shift alert created",
            alert_id=str(created.id),
            shift_id=str(created.shift_id),
            alert_type=created.alert_type.value,
            priority=created.priority.value,
            hours_until_shift=created.hours_until_shift,
        )
        await self._notify(AlertEventKind.CREATED, created)
        return ServiceResult.ok(created)

    async def acknowledge_alert(
        self,
        alert_id: uuid.UUID,
        actor_id: str,
    ) -> ServiceResult[UrgentShiftAlert]:
        try:
            alert = await self._call(self.store.get(alert_id, for_update=True))
            if alert is None:
                return _not_found(alert_id)

            if alert.status != AlertStatus.ACTIVE:
                return ServiceResult.fail(
                    AlertErrorCode.INVALID_TRANSITION,
                    f"Cannot acknowledge alert {alert_id} with status '{alert.status.value}'",
                    alert_id=str(alert_id),
                    status=alert.status.value,
                )

            now = self.clock()
            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_by = actor_id
            alert.acknowledged_at = now
            alert.updated_at = now
            saved = await self._call(self.store.save(alert))
        except _STORE_ERRORS as e:
            return self._store_failure("acknowledge_alert", e, alert_id=str(alert_id))

        logger.info(
            "Urgent shift alert acknowledged",
            alert_id=str(alert_id),
            acknowledged_by=actor_id,
        )
        return ServiceResult.ok(saved)

    async def resolve_alert(
        self,
        alert_id: uuid.UUID,
        actor_id: str,
        reason: str | None = None,
    ) -> ServiceResult[UrgentShiftAlert]:
        try:
            alert = await self._call(self.store.get(alert_id, for_update=True))
            if alert is None:
                return _not_found(alert_id)

            if alert.status == AlertStatus.RESOLVED:
                return ServiceResult.fail(
                    AlertErrorCode.INVALID_TRANSITION,
                    f"Alert {alert_id} is already resolved",
                    alert_id=str(alert_id),
                    status=alert.status.value,
                )

            now = self.clock()
            alert.status = AlertStatus.RESOLVED
            alert.resolved_by = actor_id
            alert.resolved_at = now
            alert.resolution_reason = reason
            alert.updated_at = now
            saved = await self._call(self.store.save(alert))
        except _STORE_ERRORS as e:
            return self._store_failure("resolve_alert", e, alert_id=str(alert_id))

        logger.info(
            "Urgent shift alert resolved",
            alert_id=str(alert_id),
            resolved_by=actor_id,
            reason=reason,
        )
        await self._notify(AlertEventKind.RESOLVED, saved)
        return ServiceResult.ok(saved)

    async def escalate_alert(
        self,
        request: EscalationRequest,
    ) -> ServiceResult[UrgentShiftAlert]:
        alert_id = request.alert_id
        try:
            alert = await self._call(self.store.get(alert_id, for_update=True))
            if alert is None:
                return _not_found(alert_id)

            if alert.status == AlertStatus.RESOLVED:
                return ServiceResult.fail(
                    AlertErrorCode.INVALID_TRANSITION,
                    f"Cannot escalate resolved alert {alert_id}",
                    alert_id=str(alert_id),
                    status=alert.status.value,
                )

            if request.require_active and alert.status != AlertStatus.ACTIVE:
                return ServiceResult.fail(
                    AlertErrorCode.INVALID_TRANSITION,
                    f"Alert {alert_id} is no longer active "
                    f"(status '{alert.status.value}')",
                    alert_id=str(alert_id),
                    status=alert.status.value,
                )

            if (
                request.expected_level is not None
                and alert.escalation_level != request.expected_level
            ):
                return ServiceResult.fail(
                    AlertErrorCode.INVALID_TRANSITION,
                    f"Alert {alert_id} is at escalation level "
                    f"{alert.escalation_level}, expected {request.expected_level}",
                    alert_id=str(alert_id),
                    escalation_level=alert.escalation_level,
                    expected_level=request.expected_level,
                )

            # Ceiling is checked against the freshly read row, before incrementing
            if alert.escalation_level >= MAX_ESCALATION_LEVEL:
                return ServiceResult.fail(
                    AlertErrorCode.MAX_ESCALATION_REACHED,
                    f"Alert {alert_id} is already at maximum escalation level "
                    f"({MAX_ESCALATION_LEVEL})",
                    alert_id=str(alert_id),
                    escalation_level=alert.escalation_level,
                )

            previous_priority = alert.priority
            now = self.clock()
            alert.escalation_level += 1
            alert.last_escalated_at = now
            alert.updated_at = now
            if (
                request.new_priority is not None
                and request.new_priority.rank > alert.priority.rank
            ):
                alert.priority = request.new_priority
            saved = await self._call(self.store.save(alert))
        except _STORE_ERRORS as e:
            return self._store_failure("escalate_alert", e, alert_id=str(alert_id))

        logger.info(
            "Urgent shift alert escalated",
            alert_id=str(alert_id),
            escalated_by=request.escalated_by,
            escalation_level=saved.escalation_level,
            previous_priority=previous_priority.value,
            priority=saved.priority.value,
            reason=request.reason,
        )
        await self._notify(AlertEventKind.ESCALATED, saved)
        return ServiceResult.ok(saved)

    async def resolve_alerts_for_shift_status(
        self,
        shift_id: uuid.UUID,
        new_status: ShiftStatus,
    ) -> ServiceResult[list[UrgentShiftAlert]]:
        """Resolve the shift's open alerts that ``new_status`` makes obsolete.

        Called when the shift subsystem reports a status change. Alerts whose
        type is not satisfied by the new status (e.g. an unconfirmed alert on
        a shift that became ``assigned``) stay open.
        """
        try:
            open_alerts = await self._call(
                self.store.list_alerts(
                    AlertFilters(
                        statuses=[AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED],
                        shift_ids=[shift_id],
                    )
                )
            )
        except _STORE_ERRORS as e:
            return self._store_failure(
                "resolve_alerts_for_shift_status", e, shift_id=str(shift_id)
            )

        reason = f"Auto-resolved due to status change to {new_status.value}"
        resolved: list[UrgentShiftAlert] = []
        for alert in open_alerts:
            if new_status not in RESOLVING_SHIFT_STATUSES.get(alert.alert_type, ()):
                continue

            result = await self.resolve_alert(alert.id, SYSTEM_ACTOR, reason)
            if result.success:
                resolved.append(result.data)
            elif result.error_code == AlertErrorCode.STORE_UNAVAILABLE:
                return result
            # NOT_FOUND / INVALID_TRANSITION: resolved concurrently, nothing to do

        if resolved:
            logger.info(
                "Auto-resolved alerts after shift status change",
                shift_id=str(shift_id),
                new_status=new_status.value,
                resolved_count=len(resolved),
            )
        return ServiceResult.ok(resolved)

    async def list_active_alerts(
        self,
        filters: AlertFilters | None = None,
    ) -> ServiceResult[list[UrgentShiftAlert]]:
        """Active alerts, most urgent first.

        Ordered by priority (critical first), then by hours until the shift.
        """
        filters = dataclasses.replace(
            filters or AlertFilters(), statuses=[AlertStatus.ACTIVE]
        )
        try:
            alerts = await self._call(self.store.list_alerts(filters))
        except _STORE_ERRORS as e:
            return self._store_failure("list_active_alerts", e)

        alerts.sort(key=lambda a: (-a.priority.rank, a.hours_until_shift))
        return ServiceResult.ok(alerts)

    async def get_alert_metrics(
        self,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
    ) -> ServiceResult[AlertMetrics]:
        """Aggregate statistics over alerts created in the given period."""
        try:
            alerts = await self._call(
                self.store.list_alerts(
                    AlertFilters(
                        created_after=created_after,
                        created_before=created_before,
                    )
                )
            )
        except _STORE_ERRORS as e:
            return self._store_failure("get_alert_metrics", e)

        return ServiceResult.ok(calculate_alert_metrics(alerts, now=self.clock()))


def _not_found(alert_id: uuid.UUID) -> ServiceResult:
    return ServiceResult.fail(
        AlertErrorCode.NOT_FOUND,
        f"Alert {alert_id} not found",
        alert_id=str(alert_id),
    )


def build_lifecycle_manager(db: AsyncSession) -> AlertLifecycleManager:
    """Manager backed by the database session, logging every alert event."""
    return AlertLifecycleManager(
        SqlAlchemyAlertStore(db),
        dispatchers=[LoggingAlertDispatcher()],
    )
