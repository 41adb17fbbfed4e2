import io
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from .db import connect, write_transaction
from .errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)


def strip_or_none(x):
    if pd.isna(x):
        return None
    s = str(x).strip().replace("\t", "")
    return s if s != "" else None


def to_decimal_or_none(x) -> Optional[Decimal]:
    if x is None:
        return None
    try:
        d = Decimal(x.replace(",", ""))
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def to_int_or_none(x):
    if x is None:
        return None
    try:
        f = float(x.replace(",", ""))
    except ValueError:
        return None
    # infinities and fractions are reported as invalid cells
    if not f.is_integer():
        return None
    return int(f)


def to_date_or_none(x):
    if x is None:
        return None
    ts = pd.to_datetime(x, errors="coerce")
    return None if pd.isna(ts) else ts.date().isoformat()


def _column(values: pd.Series, parse: Callable) -> pd.Series:
    # object dtype so ints stay ints and blanks stay None instead of NaN
    return pd.Series([parse(strip_or_none(v)) for v in values], index=values.index, dtype=object)


EXPECTED_COLS = [
    'Task Number', 'Description', 'Equipment Type', 'Interval Hours', 'Interval Months',
    'Last Completed Hours', 'Last Completed Date', 'Next Due Hours', 'Next Due Date',
]

PARSERS = {
    "task_number": ('Task Number', lambda x: x),
    "description": ('Description', lambda x: x),
    "equipment_type": ('Equipment Type', lambda x: x),
    "interval_hours": ('Interval Hours', to_decimal_or_none),
    "interval_months": ('Interval Months', to_int_or_none),
    "last_completed_hours": ('Last Completed Hours', to_decimal_or_none),
    "last_completed_date": ('Last Completed Date', to_date_or_none),
    "next_due_hours": ('Next Due Hours', to_decimal_or_none),
    "next_due_date": ('Next Due Date', to_date_or_none),
}


def sanitize_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    san = pd.DataFrame(index=df.index)
    for field, (col, parse) in PARSERS.items():
        san[field] = _column(df[col], parse)
        # raw text kept so unparseable values can be reported
        san["_raw_" + field] = _column(df[col], lambda x: x)
    return san


def validate_rows(san: pd.DataFrame) -> List[Dict[str, Any]]:
    errors: List[Dict[str, Any]] = []

    def add_error(i, field, msg):
        errors.append({"row_index": int(i), "field": field, "message": msg})

    seen = set()
    for i, row in san.iterrows():
        for field in PARSERS:
            if row["_raw_" + field] is not None and row[field] is None:
                add_error(i, field, f"Invalid value '{row['_raw_' + field]}'.")
        if not row["task_number"]:
            add_error(i, "task_number", "Task Number is required.")
        elif row["task_number"] in seen:
            add_error(i, "task_number", f"Duplicate Task Number '{row['task_number']}' in file.")
        else:
            seen.add(row["task_number"])
        if not row["description"]:
            add_error(i, "description", "Description is required.")
        if row["_raw_interval_hours"] is None and row["_raw_interval_months"] is None:
            add_error(i, "interval", "Interval Hours or Interval Months is required.")
        for field in ["interval_hours", "interval_months"]:
            v = row[field]
            if v is not None and v <= 0:
                add_error(i, field, "Must be > 0.")
        for field in ["last_completed_hours", "next_due_hours"]:
            v = row[field]
            if v is not None and v < 0:
                add_error(i, field, "Must be >= 0.")
    return errors


def import_csv_bytes(engine, content: bytes, actor: Optional[str] = None) -> Dict[str, Any]:
    """Seed compliance tasks from a CSV export. Rows with errors are skipped."""
    try:
        df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=True)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise ValidationError(f"Unreadable CSV: {e}")
    missing = [c for c in EXPECTED_COLS if c not in df.columns]
    if missing:
        raise ValidationError(f"Missing expected columns: {missing}")
    san = sanitize_dataframe(df)
    errors = validate_rows(san)
    total_rows = len(san)

    inserted = 0
    hard_error_rows = set(e["row_index"] for e in errors)
    with connect(engine.db_path) as con:
        with write_transaction(con) as cur:
            for i, row in san.iterrows():
                if i in hard_error_rows:
                    continue
                payload = {k: row[k] for k in PARSERS}
                try:
                    engine.insert_task(cur, payload, actor, source="csv")
                    inserted += 1
                except (ValidationError, ConflictError) as ex:
                    errors.append({"row_index": int(i), "field": "INSERT", "message": str(ex)})

    for e in errors:
        logger.warning(f"Import row {e['row_index']} rejected ({e['field']}): {e['message']}")
    logger.info(f"Imported {inserted}/{total_rows} tasks")
    return {
        "total_rows": int(total_rows),
        "inserted_rows": int(inserted),
        "errors": sorted(errors, key=lambda e: e["row_index"]),
    }
