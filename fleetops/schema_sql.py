SCHEMA_SQL = '''
CREATE TABLE IF NOT EXISTS aircraft (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    registration TEXT NOT NULL,
    seed_aftt TEXT NOT NULL DEFAULT '0',
    current_aftt TEXT NOT NULL DEFAULT '0',
    total_cycles INTEGER NOT NULL DEFAULT 0 CHECK (total_cycles >= 0),
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS compliance_task (
    id INTEGER PRIMARY KEY,
    task_number TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL,
    equipment_type TEXT NOT NULL DEFAULT '',
    interval_hours TEXT,
    interval_months INTEGER CHECK (interval_months IS NULL OR interval_months > 0),
    next_due_hours TEXT,
    next_due_date TEXT,
    revision INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    retired_at TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    CHECK (interval_hours IS NOT NULL OR interval_months IS NOT NULL)
);

CREATE TABLE IF NOT EXISTS compliance_ledger (
    id INTEGER PRIMARY KEY,
    task_id INTEGER NOT NULL,
    completion_date TEXT NOT NULL,
    completion_hours TEXT NOT NULL,
    technician_name TEXT NOT NULL,
    work_order_ref TEXT,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY (task_id) REFERENCES compliance_task(id)
);

CREATE TABLE IF NOT EXISTS flight_log (
    id INTEGER PRIMARY KEY,
    date TEXT NOT NULL,
    departure_icao TEXT NOT NULL,
    arrival_icao TEXT NOT NULL,
    flight_time TEXT NOT NULL,
    fuel_burn_lbs INTEGER NOT NULL DEFAULT 0 CHECK (fuel_burn_lbs >= 0),
    pic_name TEXT NOT NULL,
    squawks TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS data_ledger (
    id INTEGER PRIMARY KEY,
    ts TEXT NOT NULL DEFAULT (datetime('now')),
    table_name TEXT NOT NULL,
    action TEXT NOT NULL,
    row_id INTEGER,
    actor_name TEXT,
    details TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_task_active ON compliance_task(is_active);
CREATE INDEX IF NOT EXISTS idx_task_due_hours ON compliance_task(next_due_hours);
CREATE INDEX IF NOT EXISTS idx_task_due_date ON compliance_task(next_due_date);
CREATE INDEX IF NOT EXISTS idx_ledger_task ON compliance_ledger(task_id, completion_date, id);
CREATE INDEX IF NOT EXISTS idx_flight_date ON flight_log(date);
CREATE INDEX IF NOT EXISTS idx_audit_table ON data_ledger(table_name, row_id);

-- Append-only guards
CREATE TRIGGER IF NOT EXISTS forbid_delete_aircraft
BEFORE DELETE ON aircraft
BEGIN
  SELECT RAISE(ABORT, 'DELETE forbidden: append-only (aircraft)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_delete_compliance_task
BEFORE DELETE ON compliance_task
BEGIN
  SELECT RAISE(ABORT, 'DELETE forbidden: append-only (compliance_task)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_delete_compliance_ledger
BEFORE DELETE ON compliance_ledger
BEGIN
  SELECT RAISE(ABORT, 'DELETE forbidden: append-only (compliance_ledger)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_update_compliance_ledger
BEFORE UPDATE ON compliance_ledger
BEGIN
  SELECT RAISE(ABORT, 'UPDATE forbidden: immutable (compliance_ledger)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_delete_flight_log
BEFORE DELETE ON flight_log
BEGIN
  SELECT RAISE(ABORT, 'DELETE forbidden: append-only (flight_log)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_update_flight_log
BEFORE UPDATE ON flight_log
BEGIN
  SELECT RAISE(ABORT, 'UPDATE forbidden: immutable (flight_log)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_delete_data_ledger
BEFORE DELETE ON data_ledger
BEGIN
  SELECT RAISE(ABORT, 'DELETE forbidden: append-only (data_ledger)');
END;
''';
