"""
Due-margin, severity and fleet health rules.

Everything here is a pure function of stored task baselines and a snapshot
of the aircraft state. Nothing is cached or persisted.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from .errors import ValidationError
from .models import AircraftState, ComplianceTask, Severity, TaskStatus

# Absolute hour breakpoints shared by every task, whatever its interval
CRITICAL_HOURS = Decimal("25")
ADVISORY_HOURS = Decimal("75")

SEVERITY_FILL = {
    Severity.OVERDUE: 100,
    Severity.CRITICAL: 85,
    Severity.ADVISORY: 50,
    Severity.HEALTHY: 25,
    Severity.UNKNOWN: 0,
}


def remaining_hours(task: ComplianceTask, aircraft: AircraftState) -> Optional[Decimal]:
    if task.next_due_hours is None:
        return None
    return task.next_due_hours - aircraft.current_aftt


def classify(remaining: Optional[Decimal]) -> Severity:
    if remaining is None:
        return Severity.UNKNOWN
    if remaining <= 0:
        return Severity.OVERDUE
    if remaining <= CRITICAL_HOURS:
        return Severity.CRITICAL
    if remaining <= ADVISORY_HOURS:
        return Severity.ADVISORY
    return Severity.HEALTHY


def compute_status(task: ComplianceTask, aircraft: AircraftState, today: Optional[date] = None) -> TaskStatus:
    remaining = remaining_hours(task, aircraft)
    severity = classify(remaining)
    days_remaining = None
    calendar_overdue = False
    if task.next_due_date is not None and today is not None:
        days_remaining = (task.next_due_date - today).days
        calendar_overdue = days_remaining < 0
    return TaskStatus(
        remaining=remaining,
        percent_used=SEVERITY_FILL[severity],
        severity=severity,
        calendar_tracked=remaining is None,
        days_remaining=days_remaining,
        calendar_overdue=calendar_overdue,
    )


def is_overdue(task: ComplianceTask, aircraft: AircraftState, today: Optional[date] = None,
               count_calendar_overdue: bool = False) -> bool:
    status = compute_status(task, aircraft, today)
    if status.is_overdue:
        return True
    return count_calendar_overdue and status.calendar_overdue


def fleet_health(tasks: Iterable[ComplianceTask], aircraft: AircraftState, today: Optional[date] = None,
                 count_calendar_overdue: bool = False) -> int:
    tasks = list(tasks)
    total = len(tasks)
    if total == 0:
        return 100
    overdue = sum(1 for t in tasks if is_overdue(t, aircraft, today, count_calendar_overdue))
    pct = Decimal(100) * (total - overdue) / total
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def severity_counts(tasks: Iterable[ComplianceTask], aircraft: AircraftState) -> Dict[str, int]:
    counts = {s.value: 0 for s in Severity}
    for t in tasks:
        counts[classify(remaining_hours(t, aircraft)).value] += 1
    return counts


def add_months(d: date, months: int) -> date:
    try:
        return d + relativedelta(months=months)
    except (ValueError, OverflowError):
        raise ValidationError(f"{months} months from {d} is outside the supported calendar")


def next_due_from(task: ComplianceTask, completion_hours: Decimal, completion_date: date):
    """Due point one interval after a completion, per tracked axis."""
    next_hours = None
    next_date = None
    if task.interval_hours is not None:
        next_hours = completion_hours + task.interval_hours
    if task.interval_months is not None:
        next_date = add_months(completion_date, task.interval_months)
    return next_hours, next_date


def search_tasks(tasks: Iterable[ComplianceTask], term: Optional[str]) -> List[ComplianceTask]:
    tasks = list(tasks)
    if not term:
        return tasks
    needle = term.lower()
    return [
        t for t in tasks
        if needle in t.task_number.lower()
        or needle in t.description.lower()
        or needle in t.equipment_type.lower()
    ]
