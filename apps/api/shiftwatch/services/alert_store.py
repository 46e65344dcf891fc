"""Persistence boundary for urgent shift alerts and the shift query.

``AlertStore`` and ``ShiftSource`` are the two capabilities the engine is
constructed with. The SQLAlchemy implementations below back them with
PostgreSQL; the dedup guarantee lives in ``create_if_absent``, which relies
on the partial unique index over active alerts instead of a read-then-write.
"""

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import and_, inspect, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.core.results import AlertStoreError
from shiftwatch.logging_config import get_logger
from shiftwatch.models.shift import AssignmentStatus, Shift, ShiftAssignment, ShiftStatus
from shiftwatch.models.urgent_shift_alert import (
    AlertPriority,
    AlertStatus,
    AlertType,
    UrgentShiftAlert,
)
from shiftwatch.schemas.shift import ShiftSnapshot

logger = get_logger(__name__)


async def _rollback_cancelled(db: AsyncSession) -> None:
    """Roll back after a call was cancelled, e.g. by an ``asyncio.wait_for`` timeout.

    The session is shared by every call of a monitor run; it must not be left
    mid-transaction. The caller re-raises the cancellation.
    """
    try:
        await db.rollback()
    except SQLAlchemyError as e:
        logger.warning("Rollback after cancelled store call failed", error=str(e))


@dataclass
class AlertFilters:
    """Query filters for alerts. ``None`` means "don't filter on this"."""

    statuses: Sequence[AlertStatus] | None = None
    alert_types: Sequence[AlertType] | None = None
    priorities: Sequence[AlertPriority] | None = None
    shift_ids: Sequence[uuid.UUID] | None = None
    hours_until_max: float | None = None
    # Only alerts whose shift starts strictly before this instant
    scheduled_before: datetime | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None


class AlertStore(Protocol):
    """Create/read/update access to alert records."""

    async def create_if_absent(
        self, alert: UrgentShiftAlert
    ) -> UrgentShiftAlert | None:
        """Persist ``alert`` unless its shift already has an active alert.

        Returns the stored alert, or None when an active alert already exists.
        """
        ...

    async def get(
        self, alert_id: uuid.UUID, *, for_update: bool = False
    ) -> UrgentShiftAlert | None: ...

    async def save(self, alert: UrgentShiftAlert) -> UrgentShiftAlert: ...

    async def list_active(
        self, shift_ids: Sequence[uuid.UUID] | None = None
    ) -> list[UrgentShiftAlert]: ...

    async def list_alerts(self, filters: AlertFilters) -> list[UrgentShiftAlert]: ...


class ShiftSource(Protocol):
    """Read access to scheduled shifts."""

    async def list_candidate_shifts(
        self,
        statuses: Sequence[ShiftStatus],
        starts_before: datetime,
        starts_after: datetime | None = None,
    ) -> list[ShiftSnapshot]: ...


class SqlAlchemyAlertStore:
    """AlertStore backed by the ``urgent_shift_alerts`` table."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def create_if_absent(
        self, alert: UrgentShiftAlert
    ) -> UrgentShiftAlert | None:
        values = {
            attr.key: getattr(alert, attr.key)
            for attr in inspect(UrgentShiftAlert).column_attrs
            if getattr(alert, attr.key) is not None
        }
        stmt = (
            pg_insert(UrgentShiftAlert)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=[UrgentShiftAlert.shift_id],
                index_where=text("status = 'active'"),
            )
            .returning(UrgentShiftAlert.id)
        )

        try:
            result = await self._db.execute(stmt)
            inserted_id = result.scalar_one_or_none()
            await self._db.commit()
        except IntegrityError:
            # Unique index hit outside ON CONFLICT inference; same outcome
            await self._db.rollback()
            logger.debug(
                "Active alert already exists (integrity error)",
                shift_id=str(alert.shift_id),
            )
            return None
        except SQLAlchemyError as e:
            await self._db.rollback()
            raise AlertStoreError(f"Failed to insert alert: {e}") from e
        except asyncio.CancelledError:
            await _rollback_cancelled(self._db)
            raise

        if inserted_id is None:
            return None

        return await self.get(inserted_id)

    async def get(
        self, alert_id: uuid.UUID, *, for_update: bool = False
    ) -> UrgentShiftAlert | None:
        stmt = (
            select(UrgentShiftAlert)
            .where(UrgentShiftAlert.id == alert_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as e:
            raise AlertStoreError(f"Failed to load alert {alert_id}: {e}") from e
        except asyncio.CancelledError:
            await _rollback_cancelled(self._db)
            raise
        return result.scalar_one_or_none()

    async def save(self, alert: UrgentShiftAlert) -> UrgentShiftAlert:
        self._db.add(alert)
        try:
            await self._db.commit()
            await self._db.refresh(alert)
        except SQLAlchemyError as e:
            await self._db.rollback()
            raise AlertStoreError(f"Failed to save alert {alert.id}: {e}") from e
        except asyncio.CancelledError:
            await _rollback_cancelled(self._db)
            raise
        return alert

    async def list_active(
        self, shift_ids: Sequence[uuid.UUID] | None = None
    ) -> list[UrgentShiftAlert]:
        return await self.list_alerts(
            AlertFilters(statuses=[AlertStatus.ACTIVE], shift_ids=shift_ids)
        )

    async def list_alerts(self, filters: AlertFilters) -> list[UrgentShiftAlert]:
        conditions = []
        for values, column in (
            (filters.statuses, UrgentShiftAlert.status),
            (filters.alert_types, UrgentShiftAlert.alert_type),
            (filters.priorities, UrgentShiftAlert.priority),
            (filters.shift_ids, UrgentShiftAlert.shift_id),
        ):
            if values is not None:
                if not values:
                    return []
                conditions.append(column.in_(list(values)))

        if filters.hours_until_max is not None:
            conditions.append(
                UrgentShiftAlert.hours_until_shift <= filters.hours_until_max
            )
        if filters.scheduled_before is not None:
            conditions.append(
                UrgentShiftAlert.shift_starts_at < filters.scheduled_before
            )
        if filters.created_after is not None:
            conditions.append(UrgentShiftAlert.created_at >= filters.created_after)
        if filters.created_before is not None:
            conditions.append(UrgentShiftAlert.created_at <= filters.created_before)

        stmt = select(UrgentShiftAlert).order_by(UrgentShiftAlert.created_at.desc())
        if conditions:
            stmt = stmt.where(and_(*conditions))

        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as e:
            raise AlertStoreError(f"Failed to query alerts: {e}") from e
        except asyncio.CancelledError:
            await _rollback_cancelled(self._db)
            raise
        return list(result.scalars().all())


class SqlAlchemyShiftSource:
    """ShiftSource reading ``shifts`` joined with the assigned guard's assignment."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def list_candidate_shifts(
        self,
        statuses: Sequence[ShiftStatus],
        starts_before: datetime,
        starts_after: datetime | None = None,
    ) -> list[ShiftSnapshot]:
        stmt = (
            select(Shift, ShiftAssignment.assignment_status)
            .outerjoin(
                ShiftAssignment,
                and_(
                    ShiftAssignment.shift_id == Shift.id,
                    ShiftAssignment.guard_id == Shift.assigned_guard_id,
                ),
            )
            .where(
                Shift.status.in_(list(statuses)),
                Shift.start_time < starts_before,
            )
            .order_by(Shift.start_time)
        )
        if starts_after is not None:
            stmt = stmt.where(Shift.start_time >= starts_after)

        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as e:
            raise AlertStoreError(f"Failed to query candidate shifts: {e}") from e
        except asyncio.CancelledError:
            await _rollback_cancelled(self._db)
            raise

        # A guard can have several assignment rows; any confirmed one wins
        shifts: dict[uuid.UUID, Shift] = {}
        assignment_statuses: dict[uuid.UUID, str | None] = {}
        for shift, assignment_status in result.all():
            shifts.setdefault(shift.id, shift)
            current = assignment_statuses.get(shift.id)
            if current != AssignmentStatus.CONFIRMED.value:
                assignment_statuses[shift.id] = assignment_status or current

        snapshots: list[ShiftSnapshot] = []
        for shift_id, shift in shifts.items():
            try:
                snapshots.append(
                    ShiftSnapshot(
                        id=shift.id,
                        status=shift.status,
                        start_time=shift.start_time,
                        end_time=shift.end_time,
                        assigned_guard_id=shift.assigned_guard_id,
                        assignment_status=assignment_statuses.get(shift_id),
                        priority=shift.priority,
                        required_certifications=shift.required_certifications,
                    )
                )
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed shift row",
                    shift_id=str(shift_id),
                    error=str(e),
                )

        return snapshots
