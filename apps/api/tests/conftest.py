"""Pytest configuration and shared fixtures.

The engine runs against in-memory ``AlertStore`` / ``ShiftSource`` fakes so
that lifecycle, monitor and API behavior can be tested without PostgreSQL.
The fake store's create-if-absent is atomic under an ``asyncio.Lock``, the
same guarantee the partial unique index gives the SQL store.
"""

import asyncio
import os
import uuid
from collections.abc import AsyncGenerator, Sequence
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set testing mode BEFORE importing app to use NullPool
os.environ["TESTING"] = "true"

from shiftwatch.config import settings

settings.testing = True

from shiftwatch.main import app
from shiftwatch.models.shift import ShiftStatus
from shiftwatch.models.urgent_shift_alert import (
    AlertPriority,
    AlertStatus,
    AlertType,
    UrgentShiftAlert,
)
from shiftwatch.routers.urgent_alerts import get_lifecycle_manager, get_shift_monitor
from shiftwatch.schemas.shift import ShiftSnapshot
from shiftwatch.services.alert_lifecycle import AlertLifecycleManager
from shiftwatch.services.alert_notifier import AlertEvent
from shiftwatch.services.alert_store import AlertFilters
from shiftwatch.services.shift_monitor import ShiftMonitor

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class InMemoryAlertStore:
    """AlertStore kept in a dict.

    Set ``fail_with`` to make every call raise, or ``delay`` to make every
    call sleep first (for timeout tests).
    """

    def __init__(self) -> None:
        self.alerts: dict[uuid.UUID, UrgentShiftAlert] = {}
        self.fail_with: Exception | None = None
        self.delay: float = 0.0
        self.save_calls = 0
        self._lock = asyncio.Lock()

    async def _before_call(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    def add(self, alert: UrgentShiftAlert) -> UrgentShiftAlert:
        self.alerts[alert.id] = alert
        return alert

    async def create_if_absent(
        self, alert: UrgentShiftAlert
    ) -> UrgentShiftAlert | None:
        await self._before_call()
        async with self._lock:
            # Yield inside the critical section so concurrent callers interleave
            await asyncio.sleep(0)
            if any(
                existing.shift_id == alert.shift_id
                and existing.status == AlertStatus.ACTIVE
                for existing in self.alerts.values()
            ):
                return None
            self.alerts[alert.id] = alert
            return alert

    async def get(
        self, alert_id: uuid.UUID, *, for_update: bool = False
    ) -> UrgentShiftAlert | None:
        await self._before_call()
        return self.alerts.get(alert_id)

    async def save(self, alert: UrgentShiftAlert) -> UrgentShiftAlert:
        await self._before_call()
        self.save_calls += 1
        self.alerts[alert.id] = alert
        return alert

    async def list_active(
        self, shift_ids: Sequence[uuid.UUID] | None = None
    ) -> list[UrgentShiftAlert]:
        return await self.list_alerts(
            AlertFilters(statuses=[AlertStatus.ACTIVE], shift_ids=shift_ids)
        )

    async def list_alerts(self, filters: AlertFilters) -> list[UrgentShiftAlert]:
        await self._before_call()
        return [a for a in self.alerts.values() if _matches(a, filters)]

    def active_for_shift(self, shift_id: uuid.UUID) -> list[UrgentShiftAlert]:
        return [
            a
            for a in self.alerts.values()
            if a.shift_id == shift_id and a.status == AlertStatus.ACTIVE
        ]


def _matches(alert: UrgentShiftAlert, filters: AlertFilters) -> bool:
    if filters.statuses is not None and alert.status not in filters.statuses:
        return False
    if filters.alert_types is not None and alert.alert_type not in filters.alert_types:
        return False
    if filters.priorities is not None and alert.priority not in filters.priorities:
        return False
    if filters.shift_ids is not None and alert.shift_id not in filters.shift_ids:
        return False
    if (
        filters.hours_until_max is not None
        and alert.hours_until_shift > filters.hours_until_max
    ):
        return False
    if (
        filters.scheduled_before is not None
        and alert.shift_starts_at >= filters.scheduled_before
    ):
        return False
    if filters.created_after is not None and alert.created_at < filters.created_after:
        return False
    if filters.created_before is not None and alert.created_at > filters.created_before:
        return False
    return True


class InMemoryShiftSource:
    """ShiftSource over a list of snapshots."""

    def __init__(self, shifts: list[ShiftSnapshot] | None = None) -> None:
        self.shifts = list(shifts or [])
        self.fail_with: Exception | None = None
        self.calls: list[dict] = []

    async def list_candidate_shifts(
        self,
        statuses: Sequence[ShiftStatus],
        starts_before: datetime,
        starts_after: datetime | None = None,
    ) -> list[ShiftSnapshot]:
        self.calls.append(
            {
                "statuses": tuple(statuses),
                "starts_before": starts_before,
                "starts_after": starts_after,
            }
        )
        if self.fail_with is not None:
            raise self.fail_with
        return [
            s
            for s in self.shifts
            if s.status in statuses
            and s.start_time < starts_before
            and (starts_after is None or s.start_time >= starts_after)
        ]


class RecordingDispatcher:
    """Dispatcher that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[AlertEvent] = []

    async def dispatch(self, event: AlertEvent) -> None:
        self.events.append(event)


def build_shift(
    status: ShiftStatus = ShiftStatus.UNASSIGNED,
    hours_from_now: float = 18.0,
    priority: int = 3,
    assigned_guard_id: uuid.UUID | None = None,
    assignment_status: str | None = None,
    required_certifications: Sequence[str] = (),
    now: datetime = FIXED_NOW,
) -> ShiftSnapshot:
    start = now + timedelta(hours=hours_from_now)
    return ShiftSnapshot(
        id=uuid.uuid4(),
        status=status,
        start_time=start,
        end_time=start + timedelta(hours=8),
        assigned_guard_id=assigned_guard_id,
        assignment_status=assignment_status,
        priority=priority,
        required_certifications=required_certifications,
    )


def build_alert(
    shift_id: uuid.UUID | None = None,
    alert_type: AlertType = AlertType.UNASSIGNED_24H,
    priority: AlertPriority = AlertPriority.HIGH,
    status: AlertStatus = AlertStatus.ACTIVE,
    escalation_level: int = 1,
    hours_until_shift: float = 18.0,
    age_hours: float = 1.0,
    last_escalated_hours_ago: float | None = None,
    now: datetime = FIXED_NOW,
) -> UrgentShiftAlert:
    created_at = now - timedelta(hours=age_hours)
    return UrgentShiftAlert(
        id=uuid.uuid4(),
        shift_id=shift_id or uuid.uuid4(),
        alert_type=alert_type,
        priority=priority,
        status=status,
        hours_until_shift=hours_until_shift,
        urgency_score=50.0,
        shift_starts_at=now + timedelta(hours=hours_until_shift),
        escalation_level=escalation_level,
        last_escalated_at=(
            now - timedelta(hours=last_escalated_hours_ago)
            if last_escalated_hours_ago is not None
            else None
        ),
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_shift():
    """Factory for shift snapshots relative to FIXED_NOW."""
    return build_shift


@pytest.fixture
def make_alert():
    """Factory for alert rows relative to FIXED_NOW."""
    return build_alert


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def shift_source() -> InMemoryShiftSource:
    return InMemoryShiftSource()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def manager(alert_store, dispatcher) -> AlertLifecycleManager:
    return AlertLifecycleManager(
        alert_store,
        dispatchers=[dispatcher],
        timeout_seconds=1.0,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def monitor(shift_source, manager) -> ShiftMonitor:
    return ShiftMonitor(shift_source, manager, grace_hours=4.0)


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def api_client(manager, monitor) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose engine dependencies are the in-memory fakes."""
    app.dependency_overrides[get_lifecycle_manager] = lambda: manager
    app.dependency_overrides[get_shift_monitor] = lambda: monitor
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
