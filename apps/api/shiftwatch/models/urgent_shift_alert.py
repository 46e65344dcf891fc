"""Urgent shift alert model.

One row per alert raised for an at-risk shift. Rows are never deleted;
``resolved`` is a terminal status kept for the audit trail. A partial unique
index guarantees at most one ``active`` alert per shift.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiftwatch.models.base import Base, TimestampMixin

MAX_ESCALATION_LEVEL = 5


class AlertType(str, enum.Enum):
    """Why a shift is at risk."""

    UNASSIGNED_24H = "unassigned_24h"
    UNCONFIRMED_12H = "unconfirmed_12h"


class AlertPriority(str, enum.Enum):
    """Operator-facing priority of an alert."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[AlertPriority, int] = {
    AlertPriority.LOW: 1,
    AlertPriority.MEDIUM: 2,
    AlertPriority.HIGH: 3,
    AlertPriority.CRITICAL: 4,
}


class AlertStatus(str, enum.Enum):
    """Lifecycle status: active -> acknowledged -> resolved."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class UrgentShiftAlert(Base, TimestampMixin):
    """An alert raised because a shift is close and not safely staffed."""

    __tablename__ = "urgent_shift_alerts"
    __table_args__ = (
        Index(
            "uq_urgent_shift_alerts_active_shift",
            "shift_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        CheckConstraint(
            "escalation_level BETWEEN 1 AND 5",
            name="ck_urgent_shift_alerts_escalation_level",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    shift_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("shifts.id"),
        nullable=False,
        index=True,
    )

    alert_type: Mapped[AlertType] = mapped_column(
        Enum(
            AlertType,
            name="urgentalerttype",
            create_type=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )

    priority: Mapped[AlertPriority] = mapped_column(
        Enum(
            AlertPriority,
            name="urgentalertpriority",
            create_type=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )

    status: Mapped[AlertStatus] = mapped_column(
        Enum(
            AlertStatus,
            name="urgentalertstatus",
            create_type=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=AlertStatus.ACTIVE,
        index=True,
    )

    # Snapshots taken when the alert was raised
    hours_until_shift: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )

    urgency_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )

    shift_starts_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    escalation_level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    last_escalated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    acknowledged_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    resolved_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    resolution_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<UrgentShiftAlert(shift={self.shift_id}, "
            f"type={self.alert_type.value}, status={self.status.value}, "
            f"level={self.escalation_level})>"
        )
