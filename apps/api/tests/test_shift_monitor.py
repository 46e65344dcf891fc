"""Tests for the shift urgency monitor run."""

import asyncio
import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest

from shiftwatch.core.results import AlertErrorCode, AlertStoreError, ServiceResult
from shiftwatch.models.shift import AssignmentStatus, ShiftStatus
from shiftwatch.models.urgent_shift_alert import AlertPriority, AlertStatus, AlertType
from shiftwatch.services.shift_monitor import ShiftMonitor


class TestMonitorShifts:
    @pytest.mark.asyncio
    async def test_creates_alerts_for_urgent_shifts(
        self, monitor, shift_source, alert_store, make_shift
    ):
        unassigned = make_shift(hours_from_now=18, priority=2)
        unconfirmed = make_shift(
            status=ShiftStatus.ASSIGNED,
            hours_from_now=6,
            assigned_guard_id=uuid.uuid4(),
            assignment_status=AssignmentStatus.PENDING.value,
        )
        shift_source.shifts = [unassigned, unconfirmed]

        result = await monitor.monitor_shifts()

        assert result.success is True
        summary = result.data
        assert summary.monitored == 2
        assert summary.alerts_created == 2
        assert summary.skipped == 0
        assert summary.errors == 0

        [alert] = alert_store.active_for_shift(unassigned.id)
        assert alert.alert_type == AlertType.UNASSIGNED_24H
        assert alert.priority == AlertPriority.HIGH
        assert alert.hours_until_shift == pytest.approx(18.0)
        assert alert.urgency_score == pytest.approx(50.0)
        assert alert.shift_starts_at == unassigned.start_time

        [alert] = alert_store.active_for_shift(unconfirmed.id)
        assert alert.alert_type == AlertType.UNCONFIRMED_12H

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, monitor, shift_source, make_shift):
        shift_source.shifts = [
            make_shift(hours_from_now=2),
            make_shift(hours_from_now=10),
            make_shift(hours_from_now=23),
            make_shift(
                status=ShiftStatus.ASSIGNED,
                hours_from_now=20,
                assigned_guard_id=uuid.uuid4(),
                assignment_status=AssignmentStatus.PENDING.value,
            ),
        ]

        first = (await monitor.monitor_shifts()).data
        second = (await monitor.monitor_shifts()).data

        assert first.alerts_created == 3
        assert first.not_urgent == 1
        assert second.alerts_created == 0
        assert second.skipped == first.alerts_created
        assert second.monitored == first.monitored

    @pytest.mark.asyncio
    async def test_already_alerted_shift_is_skipped(
        self, monitor, shift_source, alert_store, make_shift, make_alert
    ):
        alerted = make_shift(hours_from_now=5)
        fresh = make_shift(hours_from_now=5)
        shift_source.shifts = [alerted, fresh]
        alert_store.add(make_alert(shift_id=alerted.id))

        summary = (await monitor.monitor_shifts()).data

        assert summary.monitored == 2
        assert summary.skipped == 1
        assert summary.alerts_created == 1
        assert len(alert_store.active_for_shift(alerted.id)) == 1

    @pytest.mark.asyncio
    async def test_acknowledged_alert_still_covers_shift(
        self, monitor, shift_source, alert_store, make_shift, make_alert
    ):
        shift = make_shift(hours_from_now=5)
        shift_source.shifts = [shift]
        alert_store.add(make_alert(shift_id=shift.id, status=AlertStatus.ACKNOWLEDGED))

        summary = (await monitor.monitor_shifts()).data

        assert summary.skipped == 1
        assert alert_store.active_for_shift(shift.id) == []

    @pytest.mark.asyncio
    async def test_resolved_alert_does_not_cover_shift(
        self, monitor, shift_source, alert_store, make_shift, make_alert
    ):
        shift = make_shift(hours_from_now=5)
        shift_source.shifts = [shift]
        alert_store.add(make_alert(shift_id=shift.id, status=AlertStatus.RESOLVED))

        summary = (await monitor.monitor_shifts()).data

        assert summary.alerts_created == 1

    @pytest.mark.asyncio
    async def test_not_urgent_shifts_counted_separately(
        self, monitor, shift_source, make_shift
    ):
        guard = uuid.uuid4()
        shift_source.shifts = [
            # Unconfirmed but outside its 12h window
            make_shift(
                status=ShiftStatus.ASSIGNED,
                hours_from_now=16,
                assigned_guard_id=guard,
                assignment_status=AssignmentStatus.PENDING.value,
            ),
            # Assigned and confirmed
            make_shift(
                status=ShiftStatus.ASSIGNED,
                hours_from_now=3,
                assigned_guard_id=guard,
                assignment_status=AssignmentStatus.CONFIRMED.value,
            ),
        ]

        summary = (await monitor.monitor_shifts()).data

        assert summary.monitored == 2
        assert summary.not_urgent == 2
        assert summary.alerts_created == 0
        assert summary.skipped == 0

    @pytest.mark.asyncio
    async def test_queries_candidates_within_horizon(
        self, monitor, shift_source, now
    ):
        await monitor.monitor_shifts()

        [call] = shift_source.calls
        assert set(call["statuses"]) == {ShiftStatus.UNASSIGNED, ShiftStatus.ASSIGNED}
        assert call["starts_before"] == now + timedelta(hours=24)
        assert call["starts_after"] == now - timedelta(hours=4)

    @pytest.mark.asyncio
    async def test_recently_started_shift_still_alerts(
        self, monitor, shift_source, alert_store, make_shift
    ):
        started = make_shift(hours_from_now=-1)
        long_gone = make_shift(hours_from_now=-10)
        shift_source.shifts = [started, long_gone]

        summary = (await monitor.monitor_shifts()).data

        assert summary.monitored == 1
        assert summary.alerts_created == 1
        [alert] = alert_store.active_for_shift(started.id)
        # 10 (type) + 50 (clamped time pressure) + 15 (priority 3)
        assert alert.urgency_score == pytest.approx(75.0)
        assert alert.priority == AlertPriority.CRITICAL
        assert alert.hours_until_shift == pytest.approx(-1.0)

    @pytest.mark.asyncio
    async def test_duplicate_from_concurrent_run_counts_as_skipped(
        self, monitor, manager, shift_source, make_shift
    ):
        shift_source.shifts = [make_shift(hours_from_now=4)]
        duplicate = ServiceResult.fail(
            AlertErrorCode.DUPLICATE_ALERT, "An active alert already exists"
        )

        with patch.object(manager, "create_alert", return_value=duplicate):
            summary = (await monitor.monitor_shifts()).data

        assert summary.skipped == 1
        assert summary.errors == 0
        assert summary.alerts_created == 0

    @pytest.mark.asyncio
    async def test_overlapping_runs_never_duplicate(
        self, shift_source, manager, alert_store, make_shift
    ):
        shifts = [make_shift(hours_from_now=h) for h in (1, 4, 9, 15, 22)]
        shift_source.shifts = shifts
        monitors = [ShiftMonitor(shift_source, manager, grace_hours=4) for _ in range(3)]

        results = await asyncio.gather(*(m.monitor_shifts() for m in monitors))

        created = sum(r.data.alerts_created for r in results)
        assert created == len(shifts)
        for shift in shifts:
            assert len(alert_store.active_for_shift(shift.id)) == 1

    @pytest.mark.asyncio
    async def test_single_failure_does_not_abort_run(
        self, monitor, manager, shift_source, make_shift
    ):
        failing = make_shift(hours_from_now=3)
        healthy = make_shift(hours_from_now=5)
        shift_source.shifts = [failing, healthy]
        original_create = manager.create_alert

        async def flaky_create(data):
            if data.shift_id == failing.id:
                return ServiceResult.fail(
                    AlertErrorCode.STORE_UNAVAILABLE, "Alert store unavailable"
                )
            return await original_create(data)

        with patch.object(manager, "create_alert", side_effect=flaky_create):
            summary = (await monitor.monitor_shifts()).data

        assert summary.monitored == 2
        assert summary.errors == 1
        assert summary.alerts_created == 1

    @pytest.mark.asyncio
    async def test_shift_source_failure_is_store_unavailable(
        self, monitor, shift_source
    ):
        shift_source.fail_with = AlertStoreError("shifts table locked")

        result = await monitor.monitor_shifts()

        assert result.success is False
        assert result.error_code == AlertErrorCode.STORE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_alert_lookup_failure_is_store_unavailable(
        self, monitor, shift_source, alert_store, make_shift
    ):
        shift_source.shifts = [make_shift(hours_from_now=3)]
        alert_store.fail_with = AlertStoreError("down")

        result = await monitor.monitor_shifts()

        assert result.error_code == AlertErrorCode.STORE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_empty_shift_set(self, monitor, alert_store):
        alert_store.fail_with = AlertStoreError("should not be queried")

        result = await monitor.monitor_shifts()

        assert result.success is True
        assert result.data.as_dict() == {
            "monitored": 0,
            "alerts_created": 0,
            "skipped": 0,
            "not_urgent": 0,
            "errors": 0,
        }
