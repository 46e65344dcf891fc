"""Tests for alert metrics aggregation."""

from datetime import timedelta

import pytest

from shiftwatch.models.urgent_shift_alert import AlertPriority, AlertStatus, AlertType
from shiftwatch.services.alert_metrics import calculate_alert_metrics


def test_empty_input_gives_zeroed_metrics(now):
    metrics = calculate_alert_metrics([], now)

    assert metrics.total_alerts == 0
    assert metrics.escalation_rate == 0.0
    assert metrics.alerts_by_type == {"unassigned_24h": 0, "unconfirmed_12h": 0}
    assert metrics.alerts_by_priority == {
        "low": 0,
        "medium": 0,
        "high": 0,
        "critical": 0,
    }


def test_counts_by_type_priority_and_status(make_alert, now):
    alerts = [
        make_alert(alert_type=AlertType.UNASSIGNED_24H, priority=AlertPriority.CRITICAL),
        make_alert(alert_type=AlertType.UNASSIGNED_24H, priority=AlertPriority.HIGH),
        make_alert(
            alert_type=AlertType.UNCONFIRMED_12H,
            priority=AlertPriority.CRITICAL,
            status=AlertStatus.ACKNOWLEDGED,
        ),
        make_alert(
            alert_type=AlertType.UNCONFIRMED_12H,
            priority=AlertPriority.CRITICAL,
            status=AlertStatus.RESOLVED,
        ),
    ]

    metrics = calculate_alert_metrics(alerts, now)

    assert metrics.total_alerts == 4
    assert metrics.total_active_alerts == 2
    assert metrics.alerts_by_type == {"unassigned_24h": 2, "unconfirmed_12h": 2}
    assert metrics.alerts_by_priority["critical"] == 3
    assert metrics.alerts_by_priority["high"] == 1
    # Active and acknowledged critical alerts; the resolved one doesn't count
    assert metrics.critical_alerts_unresolved == 2
    assert metrics.shifts_at_risk == 2


def test_average_resolution_and_acknowledgement(make_alert, now):
    first = make_alert(status=AlertStatus.RESOLVED, age_hours=10)
    first.resolved_at = first.created_at + timedelta(hours=2)
    first.acknowledged_at = first.created_at + timedelta(hours=1)
    second = make_alert(status=AlertStatus.RESOLVED, age_hours=10)
    second.resolved_at = second.created_at + timedelta(hours=4)

    metrics = calculate_alert_metrics([first, second], now)

    assert metrics.avg_resolution_hours == pytest.approx(3.0)
    assert metrics.avg_acknowledgement_hours == pytest.approx(1.0)


def test_escalation_rate_and_recent_counts(make_alert, now):
    recent_escalated = make_alert(
        escalation_level=2, age_hours=5, last_escalated_hours_ago=1
    )
    old_escalated = make_alert(
        escalation_level=3, age_hours=72, last_escalated_hours_ago=48
    )
    recent_resolved = make_alert(status=AlertStatus.RESOLVED, age_hours=30)
    recent_resolved.resolved_at = now - timedelta(hours=3)
    old_plain = make_alert(age_hours=50)

    metrics = calculate_alert_metrics(
        [recent_escalated, old_escalated, recent_resolved, old_plain], now
    )

    assert metrics.escalation_rate == pytest.approx(50.0)
    assert metrics.new_alerts_last_24h == 1
    assert metrics.resolved_alerts_last_24h == 1
    assert metrics.escalated_alerts_last_24h == 1


def test_shifts_at_risk_counts_distinct_shifts(make_alert, now):
    first = make_alert()
    # Two rows for one shift can only happen with one of them not active
    second = make_alert(shift_id=first.shift_id, status=AlertStatus.RESOLVED)

    metrics = calculate_alert_metrics([first, second], now)

    assert metrics.shifts_at_risk == 1
