from datetime import date
from decimal import Decimal

import pytest

from fleetops.errors import ValidationError
from fleetops.importer import import_csv_bytes

HEADER = "Task Number,Description,Equipment Type,Interval Hours,Interval Months,Last Completed Hours,Last Completed Date,Next Due Hours,Next Due Date\n"


def test_import_seeds_tasks(engine):
    content = (
        HEADER
        + "05-10-01,Oil and filter change,Powerplant,50,,,,1010,\n"
        + "05-20-00,Annual inspection,Airframe,,12,,2025-03-01,,\n"
        + "61-10-00,Propeller overhaul,Propeller,\"2,000\",72,900,,,\n"
    ).encode()
    result = import_csv_bytes(engine, content, actor="setup")
    assert result == {"total_rows": 3, "inserted_rows": 3, "errors": []}

    tasks = {t.task_number: t for t, _ in engine.list_tasks()}
    assert tasks["05-10-01"].next_due_hours == Decimal("1010")
    assert tasks["05-20-00"].next_due_date == date(2026, 3, 1)
    assert tasks["05-20-00"].next_due_hours is None
    assert tasks["61-10-00"].next_due_hours == Decimal("2900")
    assert tasks["61-10-00"].interval_months == 72


def test_rows_with_errors_are_skipped(engine):
    content = (
        HEADER
        + "05-10-01,Oil change,Powerplant,50,,,,,\n"
        + ",Missing number,Airframe,100,,,,,\n"
        + "05-10-01,Duplicate,Powerplant,50,,,,,\n"
        + "27-00-00,No interval,Flight controls,,,,,,\n"
        + "28-00-00,Bad hours,Fuel,abc,,,,,\n"
        + "30-00-00,Bad date,Ice,,6,,not-a-date,,\n"
    ).encode()
    result = import_csv_bytes(engine, content)
    assert result["total_rows"] == 6
    assert result["inserted_rows"] == 1
    rows = {e["row_index"] for e in result["errors"]}
    assert rows == {1, 2, 3, 4, 5}
    assert len(engine.list_tasks()) == 1


def test_existing_task_number_is_reported_not_raised(engine, make_task):
    make_task(task_number="05-10-01")
    content = (HEADER + "05-10-01,Oil change,Powerplant,50,,,,,\n").encode()
    result = import_csv_bytes(engine, content)
    assert result["inserted_rows"] == 0
    assert result["errors"][0]["field"] == "INSERT"


def test_missing_columns_rejected(engine):
    with pytest.raises(ValidationError):
        import_csv_bytes(engine, b"Task Number,Description\n05-10-01,Oil\n")


def test_unusable_interval_months_are_reported(engine):
    content = (
        HEADER
        + "05-20-00,Annual inspection,Airframe,,12,,,,\n"
        + "05-20-01,Overflowing interval,Airframe,,1e999,,,,\n"
        + "05-20-02,Fractional interval,Airframe,,1.5,,,,\n"
        + "05-20-03,Interval past the calendar,Airframe,,1000000,,,,\n"
    ).encode()
    result = import_csv_bytes(engine, content)
    assert result["total_rows"] == 4
    assert result["inserted_rows"] == 1
    by_row = {e["row_index"]: e["field"] for e in result["errors"]}
    assert by_row == {1: "interval_months", 2: "interval_months", 3: "INSERT"}
    assert [t.task_number for t, _ in engine.list_tasks()] == ["05-20-00"]
