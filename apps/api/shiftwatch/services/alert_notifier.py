"""Alert dispatch hook.

The lifecycle manager hands every created, escalated or resolved alert to the
configured dispatchers. Delivery (email, SMS, push) is the dispatcher's
business; a dispatcher that fails is logged and never breaks the operation
that triggered it.
"""

import enum
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from shiftwatch.logging_config import get_logger
from shiftwatch.models.urgent_shift_alert import (
    AlertPriority,
    AlertType,
    UrgentShiftAlert,
)

logger = get_logger(__name__)


class AlertEventKind(str, enum.Enum):
    CREATED = "created"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


# Priority -> prefix shown in front of the headline
PRIORITY_LABEL: dict[AlertPriority, str] = {
    AlertPriority.LOW: "[LOW]",
    AlertPriority.MEDIUM: "[MEDIUM]",
    AlertPriority.HIGH: "[HIGH]",
    AlertPriority.CRITICAL: "[CRITICAL]",
}

ALERT_HEADLINE: dict[AlertType, str] = {
    AlertType.UNASSIGNED_24H: "Shift still unassigned",
    AlertType.UNCONFIRMED_12H: "Shift assignment not confirmed",
}

ALERT_ACTION: dict[AlertType, str] = {
    AlertType.UNASSIGNED_24H: "Assign an available guard",
    AlertType.UNCONFIRMED_12H: "Contact the assigned guard for confirmation",
}


@dataclass(frozen=True)
class AlertEvent:
    """Something happened to an alert that recipients may care about."""

    kind: AlertEventKind
    alert: UrgentShiftAlert


class AlertDispatcher(Protocol):
    async def dispatch(self, event: AlertEvent) -> None: ...


def format_alert_message(event: AlertEvent) -> str:
    """Render a plain-text notification for an alert event.

    Args:
        event: The event to describe.

    Returns:
        Multi-line message suitable for any text channel.
    """
    alert = event.alert
    label = PRIORITY_LABEL.get(alert.priority, "[ALERT]")
    headline = ALERT_HEADLINE.get(alert.alert_type, "Shift needs attention")

    if event.kind == AlertEventKind.RESOLVED:
        lines = [
            f"[RESOLVED] {headline}",
            f"Shift: {alert.shift_id}",
        ]
        if alert.resolution_reason:
            lines.append(f"Reason: {alert.resolution_reason}")
        return "\n".join(lines)

    lines = [f"{label} {headline}"]
    if event.kind == AlertEventKind.ESCALATED:
        lines[0] += f" (escalation level {alert.escalation_level})"

    lines.extend(
        [
            f"Shift: {alert.shift_id}",
            f"Starts in: {alert.hours_until_shift:.1f}h",
            f"Urgency score: {alert.urgency_score:.0f}",
            f"Action: {ALERT_ACTION.get(alert.alert_type, 'Review the shift')}",
        ]
    )
    return "\n".join(lines)


class LoggingAlertDispatcher:
    """Dispatcher that writes each event to the application log."""

    async def dispatch(self, event: AlertEvent) -> None:
        alert = event.alert
        logger.info(
            "Urgent shift alert event",
            event=event.kind.value,
            alert_id=str(alert.id),
            shift_id=str(alert.shift_id),
            alert_type=alert.alert_type.value,
            priority=alert.priority.value,
            escalation_level=alert.escalation_level,
            message=format_alert_message(event),
        )


async def dispatch_alert_event(
    dispatchers: Sequence[AlertDispatcher],
    event: AlertEvent,
) -> int:
    """Hand an event to every dispatcher.

    Returns:
        Number of dispatchers that accepted the event.
    """
    delivered = 0
    for dispatcher in dispatchers:
        try:
            await dispatcher.dispatch(event)
            delivered += 1
        except Exception as e:
            logger.error(
                "Alert dispatcher failed",
                dispatcher=type(dispatcher).__name__,
                event=event.kind.value,
                alert_id=str(event.alert.id),
                error=str(e),
            )
    return delivered
