"""Pydantic schemas for the REST payloads."""

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Blankable(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AircraftRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    registration: str
    seed_aftt: float
    current_aftt: float
    total_cycles: int
    updated_at: Optional[str] = None


class AircraftCorrection(_Blankable):
    current_aftt: Optional[float] = Field(default=None, ge=0)
    total_cycles: Optional[int] = Field(default=None, ge=0)
    corrected_by: Optional[str] = None
    reason: Optional[str] = None


class TaskCreate(_Blankable):
    task_number: str
    description: str
    equipment_type: Optional[str] = None
    interval_hours: Optional[float] = None
    interval_months: Optional[int] = None
    next_due_hours: Optional[float] = None
    next_due_date: Optional[dt.date] = None
    last_completed_hours: Optional[float] = None
    last_completed_date: Optional[dt.date] = None
    created_by: Optional[str] = None


class TaskRead(BaseModel):
    id: int
    task_number: str
    description: str
    equipment_type: str
    interval_hours: Optional[float] = None
    interval_months: Optional[int] = None
    next_due_hours: Optional[float] = None
    next_due_date: Optional[dt.date] = None
    tracking_mode: str
    revision: int
    is_active: bool
    retired_at: Optional[str] = None
    remaining: Optional[float] = None
    percent_used: int
    severity: str
    calendar_tracked: bool
    days_remaining: Optional[int] = None
    calendar_overdue: bool = False


class SignOffRequest(_Blankable):
    technician_name: Optional[str] = None
    work_order_ref: Optional[str] = None
    notes: Optional[str] = None
    expected_revision: Optional[int] = None


class DashboardSignOff(SignOffRequest):
    """Form posted by the dashboard. Client-side hours and date are ignored."""

    model_config = ConfigDict(extra="ignore")

    item_id: int


class LedgerEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    completion_date: dt.date
    completion_hours: float
    technician_name: str
    work_order_ref: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None


class FlightCreate(_Blankable):
    date: Optional[dt.date] = None
    departure_icao: str
    arrival_icao: str
    flight_time: float
    fuel_burn_lbs: Optional[int] = 0
    pic_name: Optional[str] = None
    squawks: Optional[str] = None


class FlightRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    departure_icao: str
    arrival_icao: str
    flight_time: float
    fuel_burn_lbs: int
    pic_name: str
    squawks: Optional[str] = None
    created_at: Optional[str] = None


class HealthRead(BaseModel):
    health_percent: int
    total_tasks: int
    overdue_tasks: int
    severity_counts: Dict[str, int]
    current_aftt: float


class ImportResult(BaseModel):
    total_rows: int
    inserted_rows: int
    errors: List[Dict[str, object]]
