"""
Flight LogBook

Append-only flight records. Each append advances the aircraft's AFTT by the
flight time and its cycle count by one, in the same transaction.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .aircraft import AircraftStore
from .db import connect, read_snapshot, write_transaction
from .errors import ValidationError
from .models import AircraftState, FlightLogEntry
from .utils import (
    ensure_today_or_past,
    log_ledger,
    parse_iso_date,
    strip_or_none,
    to_decimal_or_none,
    to_int_or_none,
    validate_icao,
)

logger = logging.getLogger(__name__)


class FlightLogBook:

    def __init__(self, aircraft: AircraftStore, clock: Callable[[], date] = date.today):
        self.aircraft = aircraft
        self.db_path = aircraft.db_path
        self.clock = clock

    def _normalize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        flight_time = to_decimal_or_none(payload.get("flight_time"))
        if flight_time is None or flight_time <= 0:
            raise ValidationError("flight_time must be > 0")
        fuel = to_int_or_none(payload.get("fuel_burn_lbs")) or 0
        if fuel < 0:
            raise ValidationError("fuel_burn_lbs must be >= 0")
        pic = strip_or_none(payload.get("pic_name"))
        if not pic:
            raise ValidationError("pic_name is required")
        today = self.clock()
        flown_on = parse_iso_date(payload.get("date")) or today
        ensure_today_or_past(flown_on, "date", today)
        return {
            "date": flown_on.isoformat(),
            "departure_icao": validate_icao(payload.get("departure_icao"), "departure_icao"),
            "arrival_icao": validate_icao(payload.get("arrival_icao"), "arrival_icao"),
            "flight_time": flight_time,
            "fuel_burn_lbs": fuel,
            "pic_name": pic,
            "squawks": strip_or_none(payload.get("squawks")),
        }

    def append(self, payload: Dict[str, Any]) -> AircraftState:
        data = self._normalize(payload)
        with self.aircraft.locked(), connect(self.db_path) as con:
            with write_transaction(con) as cur:
                cur.execute(
                    """
                    INSERT INTO flight_log(date, departure_icao, arrival_icao, flight_time, fuel_burn_lbs, pic_name, squawks)
                    VALUES (:date, :departure_icao, :arrival_icao, :flight_time, :fuel_burn_lbs, :pic_name, :squawks)
                    """,
                    data,
                )
                flight_id = cur.lastrowid
                state = self.aircraft.advance(cur, data["flight_time"], 1)
                log_ledger(cur, "flight_log", "FLIGHT", flight_id, {
                    "values": data, "current_aftt": state.current_aftt, "total_cycles": state.total_cycles,
                }, data["pic_name"])
        logger.info(
            f"Flight {data['departure_icao']}-{data['arrival_icao']} {data['flight_time']} h logged, "
            f"AFTT now {state.current_aftt}"
        )
        return state

    def list(self) -> List[FlightLogEntry]:
        with connect(self.db_path) as con:
            rows = con.execute("SELECT * FROM flight_log ORDER BY id").fetchall()
            return [FlightLogEntry.from_row(r) for r in rows]

    def search(self, icao: Optional[str] = None, date_from=None, date_to=None) -> List[FlightLogEntry]:
        needle = (icao or "").strip().lower()
        start = parse_iso_date(date_from)
        end = parse_iso_date(date_to)
        out = []
        for entry in self.list():
            if needle and needle not in entry.departure_icao.lower() and needle not in entry.arrival_icao.lower():
                continue
            if start and entry.date < start:
                continue
            if end and entry.date > end:
                continue
            out.append(entry)
        return out

    def total_hours(self):
        with connect(self.db_path) as con:
            with read_snapshot(con) as cur:
                rows = cur.execute("SELECT flight_time FROM flight_log").fetchall()
        return sum((Decimal(r["flight_time"]) for r in rows), Decimal("0"))
