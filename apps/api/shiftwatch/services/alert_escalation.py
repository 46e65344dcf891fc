"""Automatic time-based escalation of unacknowledged urgent alerts.

Each alert type has a ladder of rules. A rule fires once the alert has sat
unacknowledged for ``after_hours`` since it was created or last escalated,
raising it to the rule's level and, optionally, priority.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from shiftwatch.core.results import AlertErrorCode, ServiceResult
from shiftwatch.logging_config import get_logger
from shiftwatch.models.urgent_shift_alert import (
    AlertPriority,
    AlertStatus,
    AlertType,
    UrgentShiftAlert,
)
from shiftwatch.services.alert_lifecycle import (
    SYSTEM_ACTOR,
    AlertLifecycleManager,
    EscalationRequest,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class EscalationRule:
    """Escalate to ``to_level`` after ``after_hours`` without acknowledgement."""

    to_level: int
    after_hours: float
    new_priority: AlertPriority | None = None


ESCALATION_RULES: dict[AlertType, tuple[EscalationRule, ...]] = {
    AlertType.UNASSIGNED_24H: (
        EscalationRule(to_level=2, after_hours=2.0, new_priority=AlertPriority.CRITICAL),
        EscalationRule(to_level=3, after_hours=6.0),
    ),
    AlertType.UNCONFIRMED_12H: (
        EscalationRule(to_level=2, after_hours=4.0, new_priority=AlertPriority.HIGH),
    ),
}


@dataclass
class EscalationDecision:
    """Decision about whether to escalate an alert."""

    should_escalate: bool
    rule: EscalationRule | None
    reason: str


@dataclass
class EscalationRunSummary:
    checked: int = 0
    escalated: int = 0
    not_due: int = 0
    # Acknowledged, resolved or escalated by someone else after the listing
    superseded: int = 0
    failed: int = 0


def determine_next_escalation(
    alert: UrgentShiftAlert,
    now: datetime | None = None,
) -> EscalationDecision:
    """Determine if an alert is due for its next automatic escalation.

    Args:
        alert: The alert to evaluate.
        now: Evaluation time (defaults to the current UTC time).

    Returns:
        EscalationDecision with the matching rule and a reason.
    """
    if now is None:
        now = datetime.now(UTC)

    if alert.status != AlertStatus.ACTIVE:
        return EscalationDecision(
            should_escalate=False,
            rule=None,
            reason=f"Alert is {alert.status.value}",
        )

    next_level = alert.escalation_level + 1
    rule = next(
        (r for r in ESCALATION_RULES.get(alert.alert_type, ()) if r.to_level == next_level),
        None,
    )
    if rule is None:
        return EscalationDecision(
            should_escalate=False,
            rule=None,
            reason=f"No automatic escalation beyond level {alert.escalation_level}",
        )

    reference = alert.last_escalated_at or alert.created_at
    waited_hours = (now - reference).total_seconds() / 3600

    if waited_hours >= rule.after_hours:
        return EscalationDecision(
            should_escalate=True,
            rule=rule,
            reason=(
                f"Unacknowledged for {waited_hours:.1f}h >= "
                f"{rule.after_hours:g}h (level {rule.to_level})"
            ),
        )
    return EscalationDecision(
        should_escalate=False,
        rule=rule,
        reason=(
            f"Unacknowledged for {waited_hours:.1f}h < "
            f"{rule.after_hours:g}h (level {rule.to_level})"
        ),
    )


async def process_automatic_escalations(
    manager: AlertLifecycleManager,
    now: datetime | None = None,
) -> ServiceResult[EscalationRunSummary]:
    """Escalate every active alert whose next rule is due.

    Args:
        manager: Lifecycle manager used for the listing and each escalation.
        now: Evaluation time (defaults to the manager's clock).

    Returns:
        ServiceResult with the run summary. A failed escalation is counted
        and the run continues.
    """
    if now is None:
        now = manager.clock()

    listed = await manager.list_active_alerts()
    if not listed.success:
        return ServiceResult.fail(
            listed.error.code, listed.error.message, **listed.error.details
        )

    summary = EscalationRunSummary()
    for alert in listed.data:
        summary.checked += 1
        decision = determine_next_escalation(alert, now)
        if not decision.should_escalate:
            summary.not_due += 1
            continue

        result = await manager.escalate_alert(
            EscalationRequest(
                alert_id=alert.id,
                escalated_by=SYSTEM_ACTOR,
                reason=decision.reason,
                new_priority=decision.rule.new_priority,
                expected_level=alert.escalation_level,
                require_active=True,
            )
        )
        if result.success:
            summary.escalated += 1
        elif result.error_code in (
            AlertErrorCode.INVALID_TRANSITION,
            AlertErrorCode.NOT_FOUND,
        ):
            summary.superseded += 1
            logger.info(
                "Automatic escalation skipped; alert changed since listing",
                alert_id=str(alert.id),
                error=result.error.message,
            )
        else:
            summary.failed += 1
            logger.warning(
                "Automatic escalation failed",
                alert_id=str(alert.id),
                error_code=result.error_code.value,
                error=result.error.message,
            )

    logger.info(
        "Automatic escalation run completed",
        checked=summary.checked,
        escalated=summary.escalated,
        not_due=summary.not_due,
        superseded=summary.superseded,
        failed=summary.failed,
    )
    return ServiceResult.ok(summary)
