"""Shift urgency scoring.

Scores how urgently a shift needs staffing attention from three weighted
terms (time pressure, shift priority, required certifications) and
classifies why the shift is at risk. Pure functions: no I/O, no clock reads
beyond the optional ``now`` default.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from shiftwatch.models.shift import ShiftStatus
from shiftwatch.models.urgent_shift_alert import AlertPriority, AlertType
from shiftwatch.schemas.shift import ShiftSnapshot

# Hours before shift start at which each alert type starts firing
ALERT_WINDOW_HOURS: dict[AlertType, float] = {
    AlertType.UNASSIGNED_24H: 24.0,
    AlertType.UNCONFIRMED_12H: 12.0,
}

# How far ahead the monitor needs to look to cover every alert window
MONITOR_HORIZON_HOURS = max(ALERT_WINDOW_HOURS.values())

# Time pressure: baseline outside the window, rising linearly to the max at start
TIME_PRESSURE_BASELINE = 10.0
TIME_PRESSURE_MAX = 50.0

# Priority 1 contributes 5 * PRIORITY_WEIGHT, priority 5 contributes 1 * PRIORITY_WEIGHT
PRIORITY_WEIGHT = 5.0

CERTIFICATION_WEIGHT = 5.0
CERTIFICATION_CAP = 15.0

ALERT_TYPE_WEIGHT: dict[AlertType, float] = {
    AlertType.UNASSIGNED_24H: 10.0,
    AlertType.UNCONFIRMED_12H: 5.0,
}

# Shifts that are not at risk only get a token priority term (max 2.5)
NON_CANDIDATE_PRIORITY_WEIGHT = 0.5

# Score bands for the initial alert priority, checked top-down
PRIORITY_SCORE_BANDS: list[tuple[float, AlertPriority]] = [
    (70.0, AlertPriority.CRITICAL),
    (50.0, AlertPriority.HIGH),
    (30.0, AlertPriority.MEDIUM),
]

HIGH_PRIORITY_SHIFT_MAX = 2


@dataclass
class UrgencyCalculation:
    """Result of scoring one shift."""

    urgency_score: float
    alert_type: AlertType | None
    should_alert: bool
    hours_until_shift: float
    factors: list[str] = field(default_factory=list)


def hours_until(start_time: datetime, now: datetime) -> float:
    """Fractional hours from ``now`` until ``start_time`` (negative once started)."""
    return (start_time - now).total_seconds() / 3600


def classify_shift(shift: ShiftSnapshot) -> AlertType | None:
    """Decide which alert type, if any, a shift is a candidate for.

    An ``assigned`` shift without a guard is inconsistent data; it is treated
    as unconfirmed rather than rejected.
    """
    if shift.status == ShiftStatus.UNASSIGNED:
        return AlertType.UNASSIGNED_24H

    if shift.status == ShiftStatus.ASSIGNED:
        if shift.assigned_guard_id is None or not shift.is_assignment_confirmed:
            return AlertType.UNCONFIRMED_12H

    return None


def time_pressure(hours_until_shift: float, window_hours: float) -> float:
    """Time pressure term for a shift ``hours_until_shift`` away.

    Args:
        hours_until_shift: Hours until the shift starts; negative is clamped to 0.
        window_hours: The alert type's window.

    Returns:
        TIME_PRESSURE_BASELINE at or beyond the window, rising linearly to
        TIME_PRESSURE_MAX at (or after) the shift start.
    """
    hours = max(hours_until_shift, 0.0)
    if hours >= window_hours:
        return TIME_PRESSURE_BASELINE

    span = TIME_PRESSURE_MAX - TIME_PRESSURE_BASELINE
    return TIME_PRESSURE_BASELINE + span * (1 - hours / window_hours)


def priority_weight(priority: int) -> float:
    """Inverse priority term: priority 1 weighs most, priority 5 least."""
    clamped = min(max(priority, 1), 5)
    return (6 - clamped) * PRIORITY_WEIGHT


def certification_weight(required_certifications: tuple[str, ...]) -> float:
    return min(len(required_certifications) * CERTIFICATION_WEIGHT, CERTIFICATION_CAP)


def calculate_urgency(
    shift: ShiftSnapshot,
    now: datetime | None = None,
) -> UrgencyCalculation:
    """Score a shift and decide whether it warrants an alert.

    Args:
        shift: Validated shift snapshot.
        now: Evaluation time (defaults to the current UTC time).

    Returns:
        UrgencyCalculation with score, alert type, decision and the factors
        that contributed.
    """
    if now is None:
        now = datetime.now(UTC)

    # Decisions use the exact value; only the reported snapshot is rounded
    hours_until_shift = hours_until(shift.start_time, now)
    reported_hours = round(hours_until_shift, 2)
    alert_type = classify_shift(shift)
    factors: list[str] = []

    if shift.required_certifications:
        factors.append("specialized_certifications")

    if alert_type is None:
        clamped = min(max(shift.priority, 1), 5)
        score = (6 - clamped) * NON_CANDIDATE_PRIORITY_WEIGHT
        return UrgencyCalculation(
            urgency_score=score,
            alert_type=None,
            should_alert=False,
            hours_until_shift=reported_hours,
            factors=factors,
        )

    window = ALERT_WINDOW_HOURS[alert_type]

    if alert_type == AlertType.UNASSIGNED_24H:
        factors.append("unassigned")
    else:
        factors.append("unconfirmed_assignment")
        if shift.assigned_guard_id is None:
            factors.append("missing_assigned_guard")

    if hours_until_shift <= 0:
        factors.append("shift_already_started")
    if hours_until_shift <= window:
        factors.append("within_alert_window")
    if shift.priority <= HIGH_PRIORITY_SHIFT_MAX:
        factors.append("high_priority_shift")

    score = (
        ALERT_TYPE_WEIGHT[alert_type]
        + time_pressure(hours_until_shift, window)
        + priority_weight(shift.priority)
        + certification_weight(shift.required_certifications)
    )

    return UrgencyCalculation(
        urgency_score=round(score, 2),
        alert_type=alert_type,
        should_alert=hours_until_shift <= window,
        hours_until_shift=reported_hours,
        factors=factors,
    )


def priority_for_score(urgency_score: float) -> AlertPriority:
    """Map an urgency score to the initial alert priority."""
    for threshold, priority in PRIORITY_SCORE_BANDS:
        if urgency_score >= threshold:
            return priority
    return AlertPriority.LOW
