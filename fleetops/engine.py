"""
Compliance Engine

Due status, fleet health, sign-off workflow, history and task management for
a single aircraft.
"""

import logging
import sqlite3
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from .aircraft import AircraftStore, acquire, fetch_state
from .compliance import (
    add_months,
    compute_status,
    fleet_health,
    is_overdue,
    next_due_from,
    search_tasks,
    severity_counts,
)
from .db import connect, read_snapshot, write_transaction
from .errors import ConflictError, NotFound, ValidationError
from .models import AircraftState, ComplianceTask, LedgerEntry, TaskStatus
from .utils import (
    ensure_today_or_past,
    log_ledger,
    parse_iso_date,
    strip_or_none,
    to_decimal_or_none,
    to_int_or_none,
)

logger = logging.getLogger(__name__)

# A century; anything longer is a data entry error
MAX_INTERVAL_MONTHS = 1200


class TaskLocks:
    """One lock per task id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def get(self, task_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(task_id)
            if lock is None:
                lock = self._locks[task_id] = threading.Lock()
            return lock


def _fetch_task(cur, task_id: int) -> ComplianceTask:
    row = cur.execute("SELECT * FROM compliance_task WHERE id=?", (task_id,)).fetchone()
    if not row:
        raise NotFound(f"Task {task_id} not found")
    return ComplianceTask.from_row(row)


def _fetch_tasks(cur, include_retired: bool = False) -> List[ComplianceTask]:
    q = "SELECT * FROM compliance_task"
    if not include_retired:
        q += " WHERE is_active=1"
    q += " ORDER BY id"
    return [ComplianceTask.from_row(r) for r in cur.execute(q).fetchall()]


class ComplianceEngine:
    """
    Computes task margins and fleet health from stored baselines and
    processes sign-offs.

    Reads take no Python lock; they run inside one sqlite read transaction so
    the aircraft state and the task rows come from the same snapshot.
    Sign-offs serialise per task.
    """

    def __init__(
        self,
        aircraft: AircraftStore,
        clock: Callable[[], date] = date.today,
        count_calendar_overdue: bool = False,
    ):
        self.aircraft = aircraft
        self.db_path = aircraft.db_path
        self.clock = clock
        self.count_calendar_overdue = count_calendar_overdue
        self._task_locks = TaskLocks()

    # ==========================================================================
    # Reads
    # ==========================================================================

    def compute_status(self, task: ComplianceTask, aircraft: AircraftState) -> TaskStatus:
        return compute_status(task, aircraft, self.clock())

    def snapshot(self, include_retired: bool = False) -> Tuple[AircraftState, List[ComplianceTask]]:
        with connect(self.db_path) as con:
            with read_snapshot(con) as cur:
                return fetch_state(cur), _fetch_tasks(cur, include_retired)

    def get_task(self, task_id: int) -> ComplianceTask:
        with connect(self.db_path) as con:
            return _fetch_task(con.cursor(), task_id)

    def list_tasks(self, include_retired: bool = False,
                   search: Optional[str] = None) -> List[Tuple[ComplianceTask, TaskStatus]]:
        state, tasks = self.snapshot(include_retired)
        today = self.clock()
        return [(t, compute_status(t, state, today)) for t in search_tasks(tasks, search)]

    def fleet_health(self) -> int:
        state, tasks = self.snapshot()
        return fleet_health(tasks, state, self.clock(), self.count_calendar_overdue)

    def health_report(self) -> Dict[str, Any]:
        state, tasks = self.snapshot()
        today = self.clock()
        overdue = sum(1 for t in tasks if is_overdue(t, state, today, self.count_calendar_overdue))
        return {
            "health_percent": fleet_health(tasks, state, today, self.count_calendar_overdue),
            "total_tasks": len(tasks),
            "overdue_tasks": overdue,
            "severity_counts": severity_counts(tasks, state),
            "current_aftt": state.current_aftt,
        }

    def history(self, task_id: int) -> List[LedgerEntry]:
        """Ledger entries for a task, oldest first."""
        with connect(self.db_path) as con:
            with read_snapshot(con) as cur:
                _fetch_task(cur, task_id)
                rows = cur.execute(
                    "SELECT * FROM compliance_ledger WHERE task_id=? ORDER BY completion_date, id",
                    (task_id,),
                ).fetchall()
                return [LedgerEntry.from_row(r) for r in rows]

    # ==========================================================================
    # Sign-off
    # ==========================================================================

    def sign_off(
        self,
        task_id: int,
        technician_name: str,
        work_order_ref: Optional[str] = None,
        notes: Optional[str] = None,
        completion_date=None,
        expected_revision: Optional[int] = None,
    ) -> LedgerEntry:
        technician = strip_or_none(technician_name)
        if not technician:
            raise ValidationError("technician_name is required")
        today = self.clock()
        completed_on = parse_iso_date(completion_date) or today
        ensure_today_or_past(completed_on, "completion_date", today)
        work_order_ref = strip_or_none(work_order_ref)
        notes = strip_or_none(notes)

        with acquire(self._task_locks.get(task_id), f"task {task_id}", self.aircraft.lock_timeout):
            with connect(self.db_path) as con:
                with write_transaction(con) as cur:
                    task = _fetch_task(cur, task_id)
                    if not task.is_active:
                        raise ValidationError(f"Task {task.task_number} is retired")
                    if expected_revision is not None and expected_revision != task.revision:
                        logger.warning(
                            f"Sign-off of {task.task_number} rejected: revision {expected_revision} != {task.revision}"
                        )
                        raise ConflictError(f"Task {task.task_number} was updated concurrently, reload and retry")
                    state = fetch_state(cur)
                    completion_hours = state.current_aftt
                    cur.execute(
                        """
                        INSERT INTO compliance_ledger(task_id, completion_date, completion_hours, technician_name, work_order_ref, notes)
                        VALUES (?,?,?,?,?,?)
                        """,
                        (task_id, completed_on.isoformat(), completion_hours, technician, work_order_ref, notes),
                    )
                    entry_id = cur.lastrowid
                    next_hours, next_date = next_due_from(task, completion_hours, completed_on)
                    cur.execute(
                        """
                        UPDATE compliance_task
                        SET next_due_hours=COALESCE(?, next_due_hours),
                            next_due_date=COALESCE(?, next_due_date),
                            revision=revision + 1
                        WHERE id=? AND revision=?
                        """,
                        (next_hours, next_date.isoformat() if next_date else None, task_id, task.revision),
                    )
                    if cur.rowcount != 1:
                        raise ConflictError(f"Task {task.task_number} baseline moved during sign-off, retry")
                    log_ledger(cur, "compliance_task", "SIGN_OFF", task_id, {
                        "ledger_entry_id": entry_id,
                        "completion_date": completed_on.isoformat(),
                        "completion_hours": completion_hours,
                        "before": {"next_due_hours": task.next_due_hours, "next_due_date": task.next_due_date},
                        "after": {"next_due_hours": next_hours, "next_due_date": next_date},
                        "work_order_ref": work_order_ref,
                    }, technician)
                    row = cur.execute("SELECT * FROM compliance_ledger WHERE id=?", (entry_id,)).fetchone()
        logger.info(f"Task {task.task_number} signed off by {technician} at {completion_hours} h")
        return LedgerEntry.from_row(row)

    # ==========================================================================
    # Task management
    # ==========================================================================

    def _normalize_task(self, payload: Dict[str, Any], state: AircraftState) -> Dict[str, Any]:
        task_number = strip_or_none(payload.get("task_number"))
        description = strip_or_none(payload.get("description"))
        if not task_number:
            raise ValidationError("task_number is required")
        if not description:
            raise ValidationError("description is required")
        interval_hours = to_decimal_or_none(payload.get("interval_hours"))
        interval_months = to_int_or_none(payload.get("interval_months"))
        if interval_hours is None and interval_months is None:
            raise ValidationError("interval_hours or interval_months is required")
        if interval_hours is not None and interval_hours <= 0:
            raise ValidationError("interval_hours must be > 0")
        if interval_months is not None and interval_months <= 0:
            raise ValidationError("interval_months must be > 0")
        if interval_months is not None and interval_months > MAX_INTERVAL_MONTHS:
            raise ValidationError(f"interval_months must be <= {MAX_INTERVAL_MONTHS}")

        today = self.clock()
        next_due_hours = to_decimal_or_none(payload.get("next_due_hours"))
        next_due_date = parse_iso_date(payload.get("next_due_date"))
        last_hours = to_decimal_or_none(payload.get("last_completed_hours"))
        last_date = parse_iso_date(payload.get("last_completed_date"))
        for name, value in (("next_due_hours", next_due_hours), ("last_completed_hours", last_hours)):
            if value is not None and value < 0:
                raise ValidationError(f"{name} must be >= 0")
        if last_hours is not None and last_hours > state.current_aftt:
            raise ValidationError("last_completed_hours cannot exceed current AFTT")
        if last_date is not None:
            ensure_today_or_past(last_date, "last_completed_date", today)

        # Seed order: explicit due point, then last completion, then now
        if interval_hours is not None and next_due_hours is None:
            base = last_hours if last_hours is not None else state.current_aftt
            next_due_hours = base + interval_hours
        if interval_months is not None and next_due_date is None:
            next_due_date = add_months(last_date or today, interval_months)
        if interval_hours is None:
            next_due_hours = None
        if interval_months is None:
            next_due_date = None

        return {
            "task_number": task_number,
            "description": description,
            "equipment_type": strip_or_none(payload.get("equipment_type")) or "",
            "interval_hours": interval_hours,
            "interval_months": interval_months,
            "next_due_hours": next_due_hours,
            "next_due_date": next_due_date.isoformat() if next_due_date else None,
        }

    def insert_task(self, cur, payload: Dict[str, Any], actor: Optional[str] = None, source: str = "api") -> ComplianceTask:
        """Validate and insert inside the caller's transaction."""
        data = self._normalize_task(payload, fetch_state(cur))
        cols = ",".join(data.keys())
        vals = ":" + ",:".join(data.keys())
        try:
            cur.execute(f"INSERT INTO compliance_task({cols}) VALUES ({vals})", data)
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Task number {data['task_number']} already exists: {e}")
        task_id = cur.lastrowid
        log_ledger(cur, "compliance_task", "CREATE", task_id, {"source": source, "values": data}, actor)
        return _fetch_task(cur, task_id)

    def create_task(self, payload: Dict[str, Any], actor: Optional[str] = None) -> ComplianceTask:
        with connect(self.db_path) as con:
            with write_transaction(con) as cur:
                task = self.insert_task(cur, payload, actor)
        logger.info(f"Created task {task.task_number} ({task.tracking_mode.value})")
        return task

    def retire_task(self, task_id: int, actor: Optional[str] = None) -> Dict[str, Any]:
        with acquire(self._task_locks.get(task_id), f"task {task_id}", self.aircraft.lock_timeout):
            with connect(self.db_path) as con:
                with write_transaction(con) as cur:
                    task = _fetch_task(cur, task_id)
                    if not task.is_active:
                        return {"id": task_id, "status": "already_retired"}
                    cur.execute(
                        "UPDATE compliance_task SET is_active=0, retired_at=datetime('now') WHERE id=?",
                        (task_id,),
                    )
                    log_ledger(cur, "compliance_task", "RETIRE", task_id, {"task_number": task.task_number}, actor)
        logger.info(f"Retired task {task.task_number}")
        return {"id": task_id, "status": "retired"}
