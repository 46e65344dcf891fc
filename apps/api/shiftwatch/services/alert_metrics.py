"""Aggregate statistics over urgent shift alerts."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from shiftwatch.models.urgent_shift_alert import (
    AlertPriority,
    AlertStatus,
    AlertType,
    UrgentShiftAlert,
)

RECENT_WINDOW = timedelta(hours=24)


@dataclass
class AlertMetrics:
    total_alerts: int = 0
    total_active_alerts: int = 0
    alerts_by_type: dict[str, int] = field(default_factory=dict)
    alerts_by_priority: dict[str, int] = field(default_factory=dict)
    avg_resolution_hours: float = 0.0
    avg_acknowledgement_hours: float = 0.0
    # Percentage of alerts escalated at least once
    escalation_rate: float = 0.0
    new_alerts_last_24h: int = 0
    resolved_alerts_last_24h: int = 0
    escalated_alerts_last_24h: int = 0
    critical_alerts_unresolved: int = 0
    shifts_at_risk: int = 0


def _average_hours(spans: list[timedelta]) -> float:
    if not spans:
        return 0.0
    return round(sum(s.total_seconds() for s in spans) / len(spans) / 3600, 2)


def _within(moment: datetime | None, since: datetime) -> bool:
    return moment is not None and moment >= since


def calculate_alert_metrics(
    alerts: Iterable[UrgentShiftAlert],
    now: datetime | None = None,
) -> AlertMetrics:
    """Summarize a set of alerts.

    Args:
        alerts: Alerts in any status.
        now: Reference time for the last-24h counters (defaults to UTC now).

    Returns:
        AlertMetrics; every counter is zero for an empty input.
    """
    if now is None:
        now = datetime.now(UTC)
    alerts = list(alerts)
    since = now - RECENT_WINDOW

    metrics = AlertMetrics(
        total_alerts=len(alerts),
        alerts_by_type={t.value: 0 for t in AlertType},
        alerts_by_priority={p.value: 0 for p in AlertPriority},
    )
    if not alerts:
        return metrics

    resolution_spans: list[timedelta] = []
    acknowledgement_spans: list[timedelta] = []
    at_risk_shifts = set()
    escalated = 0

    for alert in alerts:
        metrics.alerts_by_type[alert.alert_type.value] += 1
        metrics.alerts_by_priority[alert.priority.value] += 1

        if alert.status == AlertStatus.ACTIVE:
            metrics.total_active_alerts += 1
            at_risk_shifts.add(alert.shift_id)

        if alert.status != AlertStatus.RESOLVED and alert.priority == AlertPriority.CRITICAL:
            metrics.critical_alerts_unresolved += 1

        if alert.escalation_level > 1:
            escalated += 1

        if alert.resolved_at is not None and alert.created_at is not None:
            resolution_spans.append(alert.resolved_at - alert.created_at)
        if alert.acknowledged_at is not None and alert.created_at is not None:
            acknowledgement_spans.append(alert.acknowledged_at - alert.created_at)

        if _within(alert.created_at, since):
            metrics.new_alerts_last_24h += 1
        if _within(alert.resolved_at, since):
            metrics.resolved_alerts_last_24h += 1
        if _within(alert.last_escalated_at, since):
            metrics.escalated_alerts_last_24h += 1

    metrics.avg_resolution_hours = _average_hours(resolution_spans)
    metrics.avg_acknowledgement_hours = _average_hours(acknowledgement_spans)
    metrics.escalation_rate = round(escalated / len(alerts) * 100, 2)
    metrics.shifts_at_risk = len(at_risk_shifts)
    return metrics
