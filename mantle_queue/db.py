import os
import sqlite3
from .config import DEFAULT_CONFIG

DB_ENV = "MANTLE_QUEUE_DB"
DEFAULT_DB_FILE = "queue.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS queue_jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_name TEXT NOT NULL,
    payload TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    queue TEXT NOT NULL DEFAULT 'default',
    status TEXT NOT NULL,
    scheduled_at REAL NOT NULL,
    lock_until REAL,
    timeout INTEGER,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_queue_jobs_eligible ON queue_jobs(queue, status, scheduled_at);
CREATE INDEX IF NOT EXISTS idx_queue_jobs_fingerprint ON queue_jobs(fingerprint);

CREATE TABLE IF NOT EXISTS queue_job_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id INTEGER NOT NULL REFERENCES queue_jobs(id) ON DELETE CASCADE,
    event TEXT NOT NULL,
    created_at REAL NOT NULL,
    data TEXT
);

CREATE INDEX IF NOT EXISTS idx_queue_job_log_job ON queue_job_log(job_id, id);

CREATE TABLE IF NOT EXISTS queue_locks (
    name TEXT PRIMARY KEY,
    locked_until REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS queue_schedule (
    queue TEXT PRIMARY KEY,
    run_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def db_path(path=None) -> str:
    return str(path or os.environ.get(DB_ENV) or DEFAULT_DB_FILE)


def connect_db(path=None):
    # check_same_thread is off so a connection can be handed to a cron thread;
    # each thread still opens its own connection.
    conn = sqlite3.connect(db_path(path), timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.executescript(SCHEMA)
    return conn


def init_db(path=None):
    conn = connect_db(path)
    try:
        with conn:
            # seed defaults
            for k, v in DEFAULT_CONFIG.items():
                conn.execute(
                    "INSERT OR IGNORE INTO config(key, value) VALUES(?,?)", (k, v)
                )
    finally:
        conn.close()
