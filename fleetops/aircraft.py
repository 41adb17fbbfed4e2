"""
AircraftStore

Owns the single aircraft row and the lock that serialises every mutation of
it. The compliance engine and the flight logbook are both handed the same
store instance.
"""

import logging
import os
import threading
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from .db import connect, read_snapshot, write_transaction
from .errors import ConflictError, NotFound, ValidationError
from .models import AircraftState
from .utils import diff_rows, log_ledger, strip_or_none, to_decimal_or_none, to_int_or_none

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))


@contextmanager
def acquire(lock: threading.Lock, what: str, timeout: float = LOCK_TIMEOUT_SECONDS):
    if not lock.acquire(timeout=timeout):
        logger.warning(f"Timed out waiting for {what} lock")
        raise ConflictError(f"{what} is busy, retry the request")
    try:
        yield
    finally:
        lock.release()


def fetch_state(cur) -> AircraftState:
    row = cur.execute("SELECT * FROM aircraft WHERE id=1").fetchone()
    if not row:
        raise NotFound("Aircraft not initialised")
    return AircraftState.from_row(row)


class AircraftStore:

    def __init__(self, db_path: Optional[Union[str, Path]] = None, lock_timeout: float = LOCK_TIMEOUT_SECONDS):
        self.db_path = db_path
        self.lock_timeout = lock_timeout
        self._lock = threading.Lock()

    @contextmanager
    def locked(self):
        with acquire(self._lock, "aircraft", self.lock_timeout):
            yield

    def ensure(self, registration: str = "N528RR", seed_aftt=0, seed_cycles: int = 0) -> AircraftState:
        """Create the aircraft row on first start. Existing rows are left alone."""
        seed = to_decimal_or_none(seed_aftt) or Decimal("0")
        cycles = to_int_or_none(seed_cycles) or 0
        if seed < 0 or cycles < 0:
            raise ValidationError("Seed AFTT and cycles must be non-negative")
        with self.locked(), connect(self.db_path) as con:
            with write_transaction(con) as cur:
                row = cur.execute("SELECT id FROM aircraft WHERE id=1").fetchone()
                if not row:
                    cur.execute(
                        "INSERT INTO aircraft(id, registration, seed_aftt, current_aftt, total_cycles) VALUES (1,?,?,?,?)",
                        (registration, seed, seed, cycles),
                    )
                    log_ledger(cur, "aircraft", "CREATE", 1, {
                        "registration": registration, "seed_aftt": seed, "total_cycles": cycles,
                    })
                    logger.info(f"Initialised aircraft {registration} at {seed} h / {cycles} cycles")
                return fetch_state(cur)

    def get(self) -> AircraftState:
        with connect(self.db_path) as con:
            with read_snapshot(con) as cur:
                return fetch_state(cur)

    def advance(self, cur, hours: Decimal, cycles: int = 1) -> AircraftState:
        """Add flight hours and cycles. Caller holds the lock and the transaction."""
        state = fetch_state(cur)
        cur.execute(
            "UPDATE aircraft SET current_aftt=?, total_cycles=?, updated_at=datetime('now') WHERE id=1",
            (state.current_aftt + hours, state.total_cycles + cycles),
        )
        return fetch_state(cur)

    def correct(self, current_aftt=None, total_cycles=None, actor: Optional[str] = None,
                reason: Optional[str] = None) -> AircraftState:
        new_aftt = to_decimal_or_none(current_aftt)
        new_cycles = to_int_or_none(total_cycles)
        if new_aftt is None and new_cycles is None:
            raise ValidationError("Nothing to correct")
        with self.locked(), connect(self.db_path) as con:
            with write_transaction(con) as cur:
                state = fetch_state(cur)
                before = {"current_aftt": state.current_aftt, "total_cycles": state.total_cycles}
                after = dict(before)
                if new_aftt is not None:
                    if new_aftt < state.current_aftt:
                        raise ValidationError("AFTT cannot decrease")
                    after["current_aftt"] = new_aftt
                if new_cycles is not None:
                    if new_cycles < state.total_cycles:
                        raise ValidationError("Total cycles cannot decrease")
                    after["total_cycles"] = new_cycles
                changes = diff_rows(before, after)
                if not changes:
                    return state
                cur.execute(
                    "UPDATE aircraft SET current_aftt=?, total_cycles=?, updated_at=datetime('now') WHERE id=1",
                    (after["current_aftt"], after["total_cycles"]),
                )
                log_ledger(cur, "aircraft", "CORRECT", 1, {
                    "reason": strip_or_none(reason), "diff": changes,
                }, strip_or_none(actor))
                logger.info(f"Aircraft state corrected by {actor or 'unknown'}: {changes}")
                return fetch_state(cur)
