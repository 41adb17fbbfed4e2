import json
import logging
import os
from datetime import date
from typing import Callable, List, Optional

from fastapi import APIRouter, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .aircraft import AircraftStore
from .db import DB_PATH, connect, init_db
from .engine import ComplianceEngine
from .errors import EngineError
from .importer import import_csv_bytes
from .logbook import FlightLogBook
from .models import ComplianceTask, TaskStatus
from .schemas import (
    AircraftCorrection,
    AircraftRead,
    DashboardSignOff,
    FlightCreate,
    FlightRead,
    HealthRead,
    ImportResult,
    LedgerEntryRead,
    SignOffRequest,
    TaskCreate,
    TaskRead,
)

logger = logging.getLogger(__name__)


# CORS configurable via environment variables
def _parse_csv_env(s: str) -> list[str]:
    parts = [p.strip() for p in (s or "").split(",")]
    return [p for p in parts if p]


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


router = APIRouter()


def _engine(request: Request) -> ComplianceEngine:
    return request.app.state.engine


def _logbook(request: Request) -> FlightLogBook:
    return request.app.state.logbook


def task_out(task: ComplianceTask, status: TaskStatus) -> TaskRead:
    return TaskRead(
        **task.to_dict(),
        remaining=status.remaining,
        percent_used=status.percent_used,
        severity=status.severity.value,
        calendar_tracked=status.calendar_tracked,
        days_remaining=status.days_remaining,
        calendar_overdue=status.calendar_overdue,
    )


# ---------------------- Aircraft ----------------------
@router.get("/", response_model=AircraftRead)
@router.get("/status", response_model=AircraftRead)
def get_status(request: Request):
    return AircraftRead.model_validate(_engine(request).aircraft.get())


@router.put("/aircraft", response_model=AircraftRead)
def correct_aircraft(payload: AircraftCorrection, request: Request):
    state = _engine(request).aircraft.correct(
        current_aftt=payload.current_aftt,
        total_cycles=payload.total_cycles,
        actor=payload.corrected_by,
        reason=payload.reason,
    )
    return AircraftRead.model_validate(state)


# ---------------------- Tasks ----------------------
@router.get("/tasks", response_model=List[TaskRead])
@router.get("/maintenance", response_model=List[TaskRead])
def list_tasks(request: Request, search: Optional[str] = None, include_retired: int = 0):
    rows = _engine(request).list_tasks(include_retired=bool(include_retired), search=search)
    return [task_out(t, s) for t, s in rows]


@router.get("/health", response_model=HealthRead)
def get_health(request: Request):
    return _engine(request).health_report()


@router.post("/tasks", response_model=TaskRead, status_code=201)
def create_task(payload: TaskCreate, request: Request):
    engine = _engine(request)
    data = payload.model_dump(exclude={"created_by"})
    task = engine.create_task(data, actor=payload.created_by)
    return task_out(task, engine.compute_status(task, engine.aircraft.get()))


@router.post("/tasks/import", response_model=ImportResult)
async def import_tasks(request: Request, file: UploadFile = File(...)):
    content = await file.read()
    return import_csv_bytes(_engine(request), content)


@router.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(task_id: int, request: Request):
    engine = _engine(request)
    task = engine.get_task(task_id)
    return task_out(task, engine.compute_status(task, engine.aircraft.get()))


@router.post("/tasks/{task_id}/retire")
def retire_task(task_id: int, request: Request):
    return _engine(request).retire_task(task_id)


# ---------------------- Sign-off & history ----------------------
@router.get("/tasks/{task_id}/history", response_model=List[LedgerEntryRead])
@router.get("/maintenance/{task_id}/history", response_model=List[LedgerEntryRead])
def task_history(task_id: int, request: Request):
    return [LedgerEntryRead.model_validate(e) for e in _engine(request).history(task_id)]


@router.post("/tasks/{task_id}/complete", response_model=LedgerEntryRead, status_code=201)
def complete_task(task_id: int, payload: SignOffRequest, request: Request):
    # Server-side AFTT and date only, never client values
    entry = _engine(request).sign_off(
        task_id,
        technician_name=payload.technician_name,
        work_order_ref=payload.work_order_ref,
        notes=payload.notes,
        expected_revision=payload.expected_revision,
    )
    return LedgerEntryRead.model_validate(entry)


@router.post("/maintenance/complete", response_model=LedgerEntryRead, status_code=201)
def complete_from_dashboard(payload: DashboardSignOff, request: Request):
    return complete_task(payload.item_id, payload, request)


# ---------------------- Flight log ----------------------
@router.get("/flights", response_model=List[FlightRead])
@router.get("/logs/flights", response_model=List[FlightRead])
def list_flights(
    request: Request,
    icao: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    logbook = _logbook(request)
    if icao or date_from or date_to:
        entries = logbook.search(icao=icao, date_from=date_from, date_to=date_to)
    else:
        entries = logbook.list()
    return [FlightRead.model_validate(e) for e in entries]


@router.post("/flights", response_model=AircraftRead, status_code=201)
@router.post("/logs/submit", response_model=AircraftRead, status_code=201)
def submit_flight(payload: FlightCreate, request: Request):
    state = _logbook(request).append(payload.model_dump())
    return AircraftRead.model_validate(state)


# ---------------------- Audit ----------------------
@router.get("/audit")
def get_audit(request: Request, limit: int = 50, offset: int = 0):
    with connect(_engine(request).db_path) as con:
        rows = con.execute(
            """
            SELECT id, ts, table_name, action, row_id, actor_name, details
            FROM data_ledger
            ORDER BY id DESC
            LIMIT :limit OFFSET :offset
            """,
            {"limit": limit, "offset": offset},
        ).fetchall()
    out = []
    for r in rows:
        d = dict(r)
        try:
            d["details"] = json.loads(d["details"]) if d["details"] else {}
        except ValueError:
            d["details"] = {"raw": d["details"]}
        out.append(d)
    return out


def create_app(db_path=None, clock: Optional[Callable[[], date]] = None) -> FastAPI:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    db_path = db_path or DB_PATH
    clock = clock or date.today

    init_db(db_path)
    store = AircraftStore(db_path)
    store.ensure(
        registration=os.getenv("AIRCRAFT_REGISTRATION", "N528RR"),
        seed_aftt=os.getenv("AIRCRAFT_SEED_AFTT", "0"),
        seed_cycles=os.getenv("AIRCRAFT_SEED_CYCLES", "0"),
    )

    app = FastAPI(title="Fleet Ops Compliance")
    app.state.engine = ComplianceEngine(store, clock=clock, count_calendar_overdue=_env_flag("COUNT_CALENDAR_OVERDUE"))
    app.state.logbook = FlightLogBook(store, clock=clock)

    _origins_env = os.getenv("ALLOWED_ORIGINS", "*")
    _methods_env = os.getenv("CORS_ALLOW_METHODS", "*")
    _headers_env = os.getenv("CORS_ALLOW_HEADERS", "*")
    _allow_origins = ["*"] if _origins_env.strip() == "*" else _parse_csv_env(_origins_env)
    _allow_methods = ["*"] if _methods_env.strip() == "*" else _parse_csv_env(_methods_env)
    _allow_headers = ["*"] if _headers_env.strip() == "*" else _parse_csv_env(_headers_env)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allow_origins,
        allow_credentials=_env_flag("CORS_ALLOW_CREDENTIALS", "true"),
        allow_methods=_allow_methods,
        allow_headers=_allow_headers,
    )

    @app.exception_handler(EngineError)
    async def engine_error(request: Request, exc: EngineError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    app.include_router(router)
    logger.info(f"Compliance engine ready on {db_path}")
    return app


app = create_app()
