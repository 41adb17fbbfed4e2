import sqlite3
import threading
from datetime import date
from decimal import Decimal

import pytest

from fleetops.db import connect
from fleetops.errors import ValidationError
from tests.conftest import flight


def test_append_advances_aftt_and_cycles(store, logbook):
    state = logbook.append(flight(flight_time="2.5"))
    assert state.current_aftt == Decimal("1002.5")
    assert state.total_cycles == 1
    state = logbook.append(flight(flight_time=0.1))
    assert state.current_aftt == Decimal("1002.6")
    assert state.total_cycles == 2
    assert store.get() == state


@pytest.mark.parametrize("flight_time", ["0", 0, "-1.5", None, "abc"])
def test_non_positive_flight_time_rejected(store, logbook, flight_time):
    with pytest.raises(ValidationError):
        logbook.append(flight(flight_time=flight_time))
    assert store.get().total_cycles == 0
    assert logbook.list() == []


@pytest.mark.parametrize("overrides", [
    {"departure_icao": "K1"},
    {"departure_icao": "K-OK"},
    {"arrival_icao": "K1 5"},
    {"arrival_icao": ""},
    {"pic_name": "  "},
    {"fuel_burn_lbs": -3},
    {"date": "2026-02-01"},
])
def test_invalid_flight_fields_rejected(logbook, overrides):
    with pytest.raises(ValidationError):
        logbook.append(flight(**overrides))


def test_entries_are_normalised_and_ordered(logbook):
    logbook.append(flight(departure_icao="kokc", arrival_icao="kpwa", squawks="  "))
    logbook.append(flight(departure_icao="KPWA", arrival_icao="KTUL", squawks="Left nav light out"))
    entries = logbook.list()
    assert [(e.departure_icao, e.arrival_icao) for e in entries] == [("KOKC", "KPWA"), ("KPWA", "KTUL")]
    assert entries[0].squawks is None
    assert entries[1].squawks == "Left nav light out"
    assert entries[0].fuel_burn_lbs == 80


def test_station_codes_may_contain_digits(logbook):
    state = logbook.append(flight(departure_icao="3t5", arrival_icao="K3T5"))
    assert state.total_cycles == 1
    [entry] = logbook.list()
    assert (entry.departure_icao, entry.arrival_icao) == ("3T5", "K3T5")
    assert len(logbook.search(icao="k3t5")) == 1


def test_search_by_icao_and_date(logbook):
    logbook.append(flight(date="2026-01-02", departure_icao="KOKC", arrival_icao="KPWA"))
    logbook.append(flight(date="2026-01-05", departure_icao="KPWA", arrival_icao="KTUL"))
    logbook.append(flight(date="2026-01-09", departure_icao="KTUL", arrival_icao="KOKC"))
    assert len(logbook.search(icao="pwa")) == 2
    assert len(logbook.search(icao="ktul", date_from="2026-01-06")) == 1
    assert [e.date for e in logbook.search(date_to=date(2026, 1, 5))] == [date(2026, 1, 2), date(2026, 1, 5)]


def test_aftt_equals_seed_plus_logged_hours(store, logbook):
    for ft in ("1.2", "0.7", "3.4"):
        logbook.append(flight(flight_time=ft))
    state = store.get()
    assert state.current_aftt == state.seed_aftt + logbook.total_hours()


def test_concurrent_appends_do_not_lose_increments(store, logbook):
    errors = []

    def worker():
        try:
            logbook.append(flight(flight_time="0.5"))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert errors == []
    state = store.get()
    assert state.current_aftt == Decimal("1010.0")
    assert state.total_cycles == 20


def test_flight_log_is_immutable(store, logbook):
    logbook.append(flight())
    with connect(store.db_path) as con:
        with pytest.raises(sqlite3.DatabaseError):
            con.execute("UPDATE flight_log SET flight_time='9.9'")
        with pytest.raises(sqlite3.DatabaseError):
            con.execute("DELETE FROM flight_log")


def test_correction_is_idempotent_and_audited(store):
    corrected = store.correct(current_aftt="1005.0", total_cycles=3, actor="admin", reason="Hobbs reconciliation")
    assert corrected.current_aftt == Decimal("1005.0")
    assert corrected.total_cycles == 3
    again = store.correct(current_aftt="1005.0", total_cycles=3, actor="admin")
    assert again == corrected
    with connect(store.db_path) as con:
        n = con.execute("SELECT COUNT(*) AS n FROM data_ledger WHERE action='CORRECT'").fetchone()["n"]
    assert n == 1


def test_correction_cannot_decrease(store):
    with pytest.raises(ValidationError):
        store.correct(current_aftt="999.9")
    with pytest.raises(ValidationError):
        store.correct()
    assert store.get().current_aftt == Decimal("1000.0")


@pytest.mark.parametrize("total_cycles", ["1.5", "1e999", 10 ** 400, "three"])
def test_correction_requires_whole_cycles(store, total_cycles):
    with pytest.raises(ValidationError):
        store.correct(total_cycles=total_cycles)
    assert store.get().total_cycles == 0


def test_ensure_keeps_existing_state(store, logbook):
    logbook.append(flight(flight_time="1.5"))
    state = store.ensure(registration="N999ZZ", seed_aftt="0")
    assert state.registration == "N528RR"
    assert state.current_aftt == Decimal("1001.5")
