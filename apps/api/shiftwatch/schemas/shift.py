"""Validated shift snapshot consumed by the urgency engine."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shiftwatch.models.shift import AssignmentStatus, ShiftStatus


class ShiftSnapshot(BaseModel):
    """Immutable view of a shift as read from the scheduling backend.

    Built by the shift source adapter; rows that fail validation never reach
    the urgency calculator.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    status: ShiftStatus
    start_time: datetime
    end_time: datetime
    assigned_guard_id: uuid.UUID | None = None
    assignment_status: str | None = None
    priority: int = Field(default=3, ge=1, le=5)
    required_certifications: tuple[str, ...] = ()

    @field_validator("required_certifications", mode="before")
    @classmethod
    def _normalize_certifications(cls, value):
        if value is None:
            return ()
        return tuple(str(cert).strip() for cert in value if str(cert).strip())

    @property
    def is_assignment_confirmed(self) -> bool:
        return self.assignment_status == AssignmentStatus.CONFIRMED.value
