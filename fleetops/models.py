"""Domain records for the aircraft, its compliance tasks and logbooks."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


def _dec(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def _date(value) -> Optional[date]:
    return None if not value else date.fromisoformat(value)


class Severity(str, Enum):
    OVERDUE = "overdue"
    CRITICAL = "critical"
    ADVISORY = "advisory"
    HEALTHY = "healthy"
    UNKNOWN = "unknown"


class TrackingMode(str, Enum):
    HOURS = "hours"
    CALENDAR = "calendar"
    DUAL = "dual"


@dataclass(frozen=True)
class AircraftState:
    registration: str
    seed_aftt: Decimal
    current_aftt: Decimal
    total_cycles: int
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AircraftState":
        return cls(
            registration=row["registration"],
            seed_aftt=_dec(row["seed_aftt"]),
            current_aftt=_dec(row["current_aftt"]),
            total_cycles=int(row["total_cycles"]),
            updated_at=row["updated_at"],
        )


@dataclass(frozen=True)
class ComplianceTask:
    id: int
    task_number: str
    description: str
    equipment_type: str
    interval_hours: Optional[Decimal]
    interval_months: Optional[int]
    next_due_hours: Optional[Decimal]
    next_due_date: Optional[date]
    revision: int = 0
    is_active: bool = True
    retired_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ComplianceTask":
        return cls(
            id=row["id"],
            task_number=row["task_number"],
            description=row["description"],
            equipment_type=row["equipment_type"] or "",
            interval_hours=_dec(row["interval_hours"]),
            interval_months=row["interval_months"],
            next_due_hours=_dec(row["next_due_hours"]),
            next_due_date=_date(row["next_due_date"]),
            revision=row["revision"],
            is_active=bool(row["is_active"]),
            retired_at=row["retired_at"],
            created_at=row["created_at"],
        )

    @property
    def tracking_mode(self) -> TrackingMode:
        if self.interval_hours is not None and self.interval_months is not None:
            return TrackingMode.DUAL
        if self.interval_hours is not None:
            return TrackingMode.HOURS
        return TrackingMode.CALENDAR

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["tracking_mode"] = self.tracking_mode.value
        return d


@dataclass(frozen=True)
class LedgerEntry:
    id: int
    task_id: int
    completion_date: date
    completion_hours: Decimal
    technician_name: str
    work_order_ref: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "LedgerEntry":
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            completion_date=_date(row["completion_date"]),
            completion_hours=_dec(row["completion_hours"]),
            technician_name=row["technician_name"],
            work_order_ref=row["work_order_ref"],
            notes=row["notes"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class FlightLogEntry:
    id: int
    date: date
    departure_icao: str
    arrival_icao: str
    flight_time: Decimal
    fuel_burn_lbs: int
    pic_name: str
    squawks: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FlightLogEntry":
        return cls(
            id=row["id"],
            date=_date(row["date"]),
            departure_icao=row["departure_icao"],
            arrival_icao=row["arrival_icao"],
            flight_time=_dec(row["flight_time"]),
            fuel_burn_lbs=int(row["fuel_burn_lbs"]),
            pic_name=row["pic_name"],
            squawks=row["squawks"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class TaskStatus:
    """Margin and severity of one task, derived on every read."""

    remaining: Optional[Decimal]
    percent_used: int
    severity: Severity
    calendar_tracked: bool
    days_remaining: Optional[int] = None
    calendar_overdue: bool = False

    @property
    def is_overdue(self) -> bool:
        return self.severity is Severity.OVERDUE
