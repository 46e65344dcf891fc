"""Read-only mappings of the shift-management tables.

The ``shifts`` and ``shift_assignments`` tables are owned by the shift
scheduling subsystem. This service only reads them to find shifts at risk;
it never inserts or updates rows here and ships no migrations for them.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftwatch.models.base import Base


class ShiftStatus(str, enum.Enum):
    """Lifecycle status of a scheduled shift."""

    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AssignmentStatus(str, enum.Enum):
    """Status of a guard's assignment to a shift."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


class Shift(Base):
    """A scheduled work shift."""

    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )

    status: Mapped[ShiftStatus] = mapped_column(
        Enum(
            ShiftStatus,
            name="shiftstatus",
            create_type=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )

    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    end_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    assigned_guard_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )

    # 1 = urgent .. 5 = routine
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=3,
    )

    required_certifications: Mapped[list[str] | None] = mapped_column(
        ARRAY(String),
        nullable=True,
    )

    assignments = relationship("ShiftAssignment", back_populates="shift")

    def __repr__(self) -> str:
        return (
            f"<Shift(id={self.id}, status={self.status.value}, "
            f"start={self.start_time})>"
        )


class ShiftAssignment(Base):
    """A guard's assignment to a shift, with its confirmation state."""

    __tablename__ = "shift_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )

    shift_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    guard_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )

    # Kept as plain text: the scheduling subsystem may add states we don't know
    assignment_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=AssignmentStatus.PENDING.value,
    )

    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    shift = relationship("Shift", back_populates="assignments")
