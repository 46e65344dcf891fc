# Business Logic Services
from shiftwatch.services.alert_escalation import (
    determine_next_escalation,
    process_automatic_escalations,
)
from shiftwatch.services.alert_lifecycle import (
    AlertCreateData,
    AlertLifecycleManager,
    EscalationRequest,
)
from shiftwatch.services.alert_store import (
    AlertFilters,
    AlertStore,
    ShiftSource,
    SqlAlchemyAlertStore,
    SqlAlchemyShiftSource,
)
from shiftwatch.services.shift_monitor import MonitorRunSummary, ShiftMonitor
from shiftwatch.services.urgency_calculator import (
    UrgencyCalculation,
    calculate_urgency,
)

__all__ = [
    "AlertCreateData",
    "AlertFilters",
    "AlertLifecycleManager",
    "AlertStore",
    "EscalationRequest",
    "MonitorRunSummary",
    "ShiftMonitor",
    "ShiftSource",
    "SqlAlchemyAlertStore",
    "SqlAlchemyShiftSource",
    "UrgencyCalculation",
    "calculate_urgency",
    "determine_next_escalation",
    "process_automatic_escalations",
]
