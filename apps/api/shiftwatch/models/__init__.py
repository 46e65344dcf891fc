# Database Models
from shiftwatch.models.base import Base, TimestampMixin
from shiftwatch.models.shift import (
    AssignmentStatus,
    Shift,
    ShiftAssignment,
    ShiftStatus,
)
from shiftwatch.models.urgent_shift_alert import (
    MAX_ESCALATION_LEVEL,
    AlertPriority,
    AlertStatus,
    AlertType,
    UrgentShiftAlert,
)

__all__ = [
    "MAX_ESCALATION_LEVEL",
    "AlertPriority",
    "AlertStatus",
    "AlertType",
    "AssignmentStatus",
    "Base",
    "Shift",
    "ShiftAssignment",
    "ShiftStatus",
    "TimestampMixin",
    "UrgentShiftAlert",
]
