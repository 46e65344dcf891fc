"""Urgent shift alert API.

Operator surface over the alert lifecycle: list active alerts, trigger a
monitor run, acknowledge, resolve and escalate alerts, and report shift
status changes for auto-resolution. The acting manager is identified by the
``X-Manager-ID`` header.
"""

import uuid
from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.core.results import AlertErrorCode, ServiceResult
from shiftwatch.database import get_db
from shiftwatch.logging_config import get_logger
from shiftwatch.models.urgent_shift_alert import AlertPriority, AlertType
from shiftwatch.schemas.urgent_alert import (
    ActiveUrgentAlertsResponse,
    AlertMetricsResponse,
    EscalateAlertRequest,
    MonitorRunResponse,
    ResolveAlertRequest,
    ShiftStatusChangeRequest,
    ShiftStatusChangeResponse,
    UrgentAlertResponse,
)
from shiftwatch.services.alert_lifecycle import (
    AlertLifecycleManager,
    EscalationRequest,
    build_lifecycle_manager,
)
from shiftwatch.services.alert_store import AlertFilters
from shiftwatch.services.shift_monitor import ShiftMonitor, build_shift_monitor

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/shifts/urgent-alerts", tags=["urgent-alerts"])

ERROR_STATUS: dict[AlertErrorCode, int] = {
    AlertErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AlertErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    AlertErrorCode.DUPLICATE_ALERT: status.HTTP_409_CONFLICT,
    AlertErrorCode.MAX_ESCALATION_REACHED: status.HTTP_409_CONFLICT,
    AlertErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def get_lifecycle_manager(
    db: AsyncSession = Depends(get_db),
) -> AlertLifecycleManager:
    return build_lifecycle_manager(db)


async def get_shift_monitor(db: AsyncSession = Depends(get_db)) -> ShiftMonitor:
    return build_shift_monitor(db)


async def require_manager_id(
    x_manager_id: Annotated[str | None, Header(alias="X-Manager-ID")] = None,
) -> str:
    """Identity of the acting manager, taken from the ``X-Manager-ID`` header."""
    if x_manager_id is None or not x_manager_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Manager-ID header",
        )
    return x_manager_id.strip()


ManagerId = Annotated[str, Depends(require_manager_id)]
LifecycleManager = Annotated[AlertLifecycleManager, Depends(get_lifecycle_manager)]


def raise_for_failure(result: ServiceResult) -> None:
    """Translate a failed ServiceResult into an HTTPException."""
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS.get(
            result.error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
        detail={"code": result.error.code.value, "message": result.error.message},
    )


@router.get("/", response_model=ActiveUrgentAlertsResponse)
async def list_active_alerts(
    manager_id: ManagerId,
    manager: LifecycleManager,
    alert_types: Annotated[list[AlertType] | None, Query()] = None,
    priorities: Annotated[list[AlertPriority] | None, Query()] = None,
    shift_ids: Annotated[list[uuid.UUID] | None, Query()] = None,
    hours_until_max: Annotated[float | None, Query(gt=0)] = None,
    scheduled_before: datetime | None = None,
    include_metrics: bool = True,
    metrics_days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> ActiveUrgentAlertsResponse:
    """List active alerts, critical first, then soonest shift first."""
    result = await manager.list_active_alerts(
        AlertFilters(
            alert_types=alert_types,
            priorities=priorities,
            shift_ids=shift_ids,
            hours_until_max=hours_until_max,
            scheduled_before=scheduled_before,
        )
    )
    raise_for_failure(result)

    metrics = None
    if include_metrics:
        metrics_result = await manager.get_alert_metrics(
            created_after=manager.clock() - timedelta(days=metrics_days)
        )
        raise_for_failure(metrics_result)
        metrics = AlertMetricsResponse.model_validate(metrics_result.data)

    alerts = [UrgentAlertResponse.model_validate(a) for a in result.data]
    return ActiveUrgentAlertsResponse(alerts=alerts, count=len(alerts), metrics=metrics)


@router.post(
    "/monitor",
    response_model=MonitorRunResponse,
    status_code=status.HTTP_201_CREATED,
)
async def trigger_monitor_run(
    manager_id: ManagerId,
    monitor: Annotated[ShiftMonitor, Depends(get_shift_monitor)],
) -> MonitorRunResponse:
    """Run the shift urgency monitor now."""
    logger.info("Manual shift monitor run requested", manager_id=manager_id)
    result = await monitor.monitor_shifts()
    raise_for_failure(result)
    return MonitorRunResponse.model_validate(result.data)


@router.post("/{alert_id}/acknowledge", response_model=UrgentAlertResponse)
async def acknowledge_alert(
    alert_id: uuid.UUID,
    manager_id: ManagerId,
    manager: LifecycleManager,
) -> UrgentAlertResponse:
    result = await manager.acknowledge_alert(alert_id, manager_id)
    raise_for_failure(result)
    return UrgentAlertResponse.model_validate(result.data)


@router.post("/{alert_id}/resolve", response_model=UrgentAlertResponse)
async def resolve_alert(
    alert_id: uuid.UUID,
    manager_id: ManagerId,
    manager: LifecycleManager,
    body: ResolveAlertRequest | None = None,
) -> UrgentAlertResponse:
    reason = body.reason if body else None
    result = await manager.resolve_alert(alert_id, manager_id, reason)
    raise_for_failure(result)
    return UrgentAlertResponse.model_validate(result.data)


@router.post("/{alert_id}/escalate", response_model=UrgentAlertResponse)
async def escalate_alert(
    alert_id: uuid.UUID,
    manager_id: ManagerId,
    manager: LifecycleManager,
    body: EscalateAlertRequest | None = None,
) -> UrgentAlertResponse:
    """Escalate an alert by one level, optionally raising its priority."""
    body = body or EscalateAlertRequest()
    result = await manager.escalate_alert(
        EscalationRequest(
            alert_id=alert_id,
            escalated_by=manager_id,
            reason=body.reason,
            new_priority=body.new_priority,
        )
    )
    raise_for_failure(result)
    return UrgentAlertResponse.model_validate(result.data)


@router.post(
    "/shifts/{shift_id}/status-change",
    response_model=ShiftStatusChangeResponse,
)
async def report_shift_status_change(
    shift_id: uuid.UUID,
    body: ShiftStatusChangeRequest,
    manager_id: ManagerId,
    manager: LifecycleManager,
) -> ShiftStatusChangeResponse:
    """Resolve the shift's alerts that its new status makes obsolete."""
    result = await manager.resolve_alerts_for_shift_status(shift_id, body.new_status)
    raise_for_failure(result)

    resolved = [UrgentAlertResponse.model_validate(a) for a in result.data]
    return ShiftStatusChangeResponse(
        shift_id=shift_id,
        new_status=body.new_status,
        resolved_alerts=resolved,
        resolved_count=len(resolved),
    )
