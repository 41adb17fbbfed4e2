import os
import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from .schema_sql import SCHEMA_SQL

DB_DIR = Path(os.getenv("DB_DIR", "./data"))
DB_PATH = DB_DIR / os.getenv("DB_FILE", "fleet_ops.sqlite")

# Hours are stored as TEXT so Decimal values survive the round trip exactly
sqlite3.register_adapter(Decimal, str)


def get_connection(db_path: Optional[Union[str, Path]] = None):
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(path, check_same_thread=False, timeout=30)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON;")
    return con


@contextmanager
def connect(db_path: Optional[Union[str, Path]] = None):
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()


@contextmanager
def write_transaction(con: sqlite3.Connection):
    """BEGIN IMMEDIATE so the write lock is taken before the first read."""
    con.execute("BEGIN IMMEDIATE")
    try:
        yield con.cursor()
    except BaseException:
        con.rollback()
        raise
    con.commit()


@contextmanager
def read_snapshot(con: sqlite3.Connection):
    # Every SELECT inside the block sees the same committed state
    con.execute("BEGIN")
    try:
        yield con.cursor()
    finally:
        con.rollback()


def init_db(db_path: Optional[Union[str, Path]] = None) -> None:
    with connect(db_path) as con:
        con.execute("PRAGMA journal_mode=WAL")
        con.executescript(SCHEMA_SQL)
        con.commit()
