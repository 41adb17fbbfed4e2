import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .errors import ValidationError


def strip_or_none(x: Optional[str]):
    if x is None:
        return None
    s = str(x).strip().replace("\t", "")
    return s if s else None


def to_decimal_or_none(x) -> Optional[Decimal]:
    if x is None or x == "":
        return None
    if isinstance(x, Decimal):
        return x
    try:
        if isinstance(x, str):
            x = x.replace(",", "")
        # str() first so floats keep their short repr (2.5 -> Decimal('2.5'))
        d = Decimal(str(x))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid number: {x!r}")
    if not d.is_finite():
        raise ValidationError(f"Invalid number: {x!r}")
    return d


def to_int_or_none(x):
    if x is None or x == "":
        return None
    try:
        if isinstance(x, str):
            x = x.replace(",", "")
        f = float(x)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid integer: {x!r}")
    if not f.is_integer():
        raise ValidationError(f"Invalid integer: {x!r}")
    return int(f)


def parse_iso_date(s) -> Optional[date]:
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    try:
        return datetime.fromisoformat(str(s)).date()
    except ValueError:
        raise ValidationError(f"Invalid date, expected YYYY-MM-DD: {s!r}")


def ensure_today_or_past(d: Optional[date], field: str, today: date) -> None:
    if not d:
        raise ValidationError(f"{field} is required in YYYY-MM-DD format")
    if d > today:
        raise ValidationError(f"{field} cannot be in the future")


def validate_icao(code: Optional[str], field: str) -> str:
    code = (code or "").strip().upper()
    if not code or len(code) not in (3, 4) or not code.isalnum():
        raise ValidationError(f"{field} must be an ICAO/IATA code (3-4 letters or digits)")
    return code


def json_dumps(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, default=str)


def diff_rows(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    changed = {}
    keys = set(before.keys()) | set(after.keys())
    for k in keys:
        if before.get(k) != after.get(k):
            changed[k] = {"from": before.get(k), "to": after.get(k)}
    return changed


def log_ledger(cur, table_name: str, action: str, row_id: Optional[int], details: Dict[str, Any], actor: Optional[str] = None) -> None:
    cur.execute(
        "INSERT INTO data_ledger(table_name, action, row_id, actor_name, details) VALUES (?,?,?,?,?)",
        (table_name, action, row_id, actor, json_dumps(details))
    )
