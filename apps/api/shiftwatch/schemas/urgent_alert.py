"""Request and response schemas for the urgent shift alert API."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from shiftwatch.models.shift import ShiftStatus
from shiftwatch.models.urgent_shift_alert import AlertPriority, AlertStatus, AlertType


class UrgentAlertResponse(BaseModel):
    """Single urgent shift alert."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    shift_id: uuid.UUID
    alert_type: AlertType
    priority: AlertPriority
    status: AlertStatus
    hours_until_shift: float
    urgency_score: float
    shift_starts_at: datetime
    escalation_level: int
    last_escalated_at: datetime | None = None
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class AlertMetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_alerts: int
    total_active_alerts: int
    alerts_by_type: dict[str, int]
    alerts_by_priority: dict[str, int]
    avg_resolution_hours: float
    avg_acknowledgement_hours: float
    escalation_rate: float
    new_alerts_last_24h: int
    resolved_alerts_last_24h: int
    escalated_alerts_last_24h: int
    critical_alerts_unresolved: int
    shifts_at_risk: int


class ActiveUrgentAlertsResponse(BaseModel):
    """Active alerts, most urgent first, with metrics over the same period."""

    alerts: list[UrgentAlertResponse]
    count: int
    metrics: AlertMetricsResponse | None = None


class MonitorRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    monitored: int
    alerts_created: int
    skipped: int
    not_urgent: int
    errors: int


class ResolveAlertRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class EscalateAlertRequest(BaseModel):
    """Manual escalation.

    ``new_priority`` only takes effect when it is higher than the alert's
    current priority.
    """

    reason: str | None = Field(default=None, max_length=2000)
    new_priority: AlertPriority | None = None


class ShiftStatusChangeRequest(BaseModel):
    new_status: ShiftStatus


class ShiftStatusChangeResponse(BaseModel):
    shift_id: uuid.UUID
    new_status: ShiftStatus
    resolved_alerts: list[UrgentAlertResponse]
    resolved_count: int
