from __future__ import annotations

import os
import tempfile
from datetime import date

# Keep the module-level app in fleetops.main away from ./data
os.environ.setdefault("DB_DIR", tempfile.mkdtemp(prefix="fleetops-"))

import pytest
from fastapi.testclient import TestClient

from fleetops.aircraft import AircraftStore
from fleetops.db import init_db
from fleetops.engine import ComplianceEngine
from fleetops.logbook import FlightLogBook

TODAY = date(2026, 1, 15)


def fixed_clock() -> date:
    return TODAY


@pytest.fixture()
def db_path(tmp_path):
    path = tmp_path / "fleet.sqlite"
    init_db(path)
    return path


@pytest.fixture()
def store(db_path):
    s = AircraftStore(db_path, lock_timeout=5)
    s.ensure(registration="N528RR", seed_aftt="1000.0", seed_cycles=0)
    return s


@pytest.fixture()
def engine(store):
    return ComplianceEngine(store, clock=fixed_clock)


@pytest.fixture()
def logbook(store):
    return FlightLogBook(store, clock=fixed_clock)


@pytest.fixture()
def make_task(engine):
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        payload = {
            "task_number": f"05-{counter['n']:03d}",
            "description": "Engine oil and filter change",
            "equipment_type": "Powerplant",
            "interval_hours": "100",
        }
        payload.update(overrides)
        return engine.create_task(payload, actor="setup")

    return factory


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("AIRCRAFT_SEED_AFTT", "1000.0")
    monkeypatch.setenv("AIRCRAFT_REGISTRATION", "N528RR")
    from fleetops.main import create_app

    app = create_app(db_path=tmp_path / "api.sqlite", clock=fixed_clock)
    return TestClient(app)


def flight(**overrides):
    payload = {
        "date": "2026-01-14",
        "departure_icao": "KOKC",
        "arrival_icao": "KPWA",
        "flight_time": "1.0",
        "fuel_burn_lbs": 80,
        "pic_name": "Xavier",
    }
    payload.update(overrides)
    return payload
