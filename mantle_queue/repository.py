import json
import sqlite3
from typing import Dict, Iterable, List, Optional

from .config import validate_key, validate_value
from .models import (
    PENDING, RUNNING, FAILED, COMPLETED, STATUSES, TERMINAL, QUEUED,
    LogEntry, QueueRecord,
)

# A row can be claimed when it is due, or when its claim has gone stale.
ELIGIBLE = (
    "((status=? AND scheduled_at <= ?) "
    "OR (status=? AND lock_until IS NOT NULL AND lock_until < ?))"
)


def _eligible_params(now: float):
    return (PENDING, now, RUNNING, now)


# ---------- Config ----------
def get_config(conn) -> Dict[str, str]:
    cur = conn.execute("SELECT key, value FROM config")
    return {r["key"]: r["value"] for r in cur.fetchall()}


def set_config(conn, key: str, value) -> str:
    validate_key(key)
    value = validate_value(key, value)
    with conn:
        conn.execute(
            "INSERT INTO config(key,value) VALUES(?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
    return value


# ---------- Records: insert / claim / finish ----------
def insert_record(
    conn,
    *,
    job_name: str,
    payload: str,
    fingerprint: str,
    queue: str,
    scheduled_at: float,
    timeout: Optional[int],
    now: float,
    log_data=None,
) -> int:
    """Insert a pending record together with its `queued` log entry."""
    try:
        with conn:
            cur = conn.execute(
                """INSERT INTO queue_jobs
                   (job_name, payload, fingerprint, queue, status, scheduled_at,
                    timeout, attempts, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)""",
                (job_name, payload, fingerprint, queue, PENDING, scheduled_at, timeout, now, now),
            )
            _write_log(conn, cur.lastrowid, QUEUED, now, log_data)
    except sqlite3.Error as e:
        raise RuntimeError(f"DB error while inserting job: {e}")
    return cur.lastrowid


def select_claim_candidates(
    conn, queue: str, now: float, limit: int, exclude: Iterable[int] = ()
) -> List[sqlite3.Row]:
    exclude = list(exclude)
    sql = f"SELECT id, timeout FROM queue_jobs WHERE queue=? AND {ELIGIBLE}"
    params = [queue, *_eligible_params(now)]
    if exclude:
        sql += f" AND id NOT IN ({','.join('?' * len(exclude))})"
        params.extend(exclude)
    sql += " ORDER BY scheduled_at ASC, id ASC LIMIT ?"
    params.append(int(limit))
    return conn.execute(sql, params).fetchall()


def claim_record(conn, job_id: int, now: float, lock_until: float) -> bool:
    """
    Claim a row for one worker. The eligibility test and the transition happen
    in one UPDATE, so of several racing claims exactly one sees rowcount 1.
    """
    with conn:
        updated = conn.execute(
            f"""UPDATE queue_jobs
                SET status=?, lock_until=?, attempts=attempts+1, updated_at=?
                WHERE id=? AND {ELIGIBLE}""",
            (RUNNING, lock_until, now, job_id, *_eligible_params(now)),
        )
    return updated.rowcount == 1


def mark_completed(conn, job_id: int, now: float):
    with conn:
        conn.execute(
            "UPDATE queue_jobs SET status=?, lock_until=NULL, updated_at=? WHERE id=?",
            (COMPLETED, now, job_id),
        )


def mark_failed(conn, job_id: int, now: float, error: str):
    with conn:
        conn.execute(
            "UPDATE queue_jobs SET status=?, lock_until=NULL, last_error=?, updated_at=? WHERE id=?",
            (FAILED, error[:2000], now, job_id),
        )


def release_record(conn, job_id: int, now: float, scheduled_at: float, error: Optional[str] = None):
    with conn:
        conn.execute(
            """UPDATE queue_jobs
               SET status=?, lock_until=NULL, scheduled_at=?, updated_at=?,
                   last_error=COALESCE(?, last_error)
               WHERE id=?""",
            (PENDING, scheduled_at, now, error[:2000] if error else None, job_id),
        )


def delete_record(conn, job_id: int) -> bool:
    with conn:
        res = conn.execute("DELETE FROM queue_jobs WHERE id=?", (job_id,))
    return res.rowcount == 1


def cleanup(conn, older_than: float, now: float) -> int:
    """Delete terminal rows last touched before `older_than` that hold no live lock."""
    with conn:
        res = conn.execute(
            f"""DELETE FROM queue_jobs
                WHERE status IN ({','.join('?' * len(TERMINAL))})
                  AND updated_at < ?
                  AND (lock_until IS NULL OR lock_until <= ?)""",
            (*TERMINAL, older_than, now),
        )
    return res.rowcount


# ---------- Log ----------
def _write_log(conn, job_id: int, event: str, now: float, data=None):
    conn.execute(
        "INSERT INTO queue_job_log(job_id, event, created_at, data) VALUES (?,?,?,?)",
        (job_id, event, now, json.dumps(data, default=str) if data is not None else None),
    )


def append_log(conn, job_id: int, event: str, now: float, data=None):
    with conn:
        _write_log(conn, job_id, event, now, data)


def get_log(conn, job_id: int) -> List[LogEntry]:
    rows = conn.execute(
        "SELECT event, created_at, data FROM queue_job_log WHERE job_id=? ORDER BY id ASC",
        (job_id,),
    ).fetchall()
    return [LogEntry.from_row(r) for r in rows]


# ---------- Queries ----------
def get_record(conn, job_id: int, with_log: bool = False) -> Optional[QueueRecord]:
    row = conn.execute("SELECT * FROM queue_jobs WHERE id=?", (job_id,)).fetchone()
    if not row:
        return None
    return QueueRecord.from_row(row, get_log(conn, job_id) if with_log else None)


def list_records(conn, queue: Optional[str] = None, status: Optional[str] = None) -> List[QueueRecord]:
    sql = "SELECT * FROM queue_jobs"
    clauses, params = [], []
    if queue:
        clauses.append("queue=?")
        params.append(queue)
    if status:
        clauses.append("status=?")
        params.append(status)
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY scheduled_at ASC, id ASC"
    return [QueueRecord.from_row(r) for r in conn.execute(sql, params).fetchall()]


def count_records(conn, queue: Optional[str] = None, status: Optional[str] = None) -> int:
    sql = "SELECT COUNT(1) AS c FROM queue_jobs WHERE 1=1"
    params = []
    if queue:
        sql += " AND queue=?"
        params.append(queue)
    if status:
        sql += " AND status=?"
        params.append(status)
    return conn.execute(sql, params).fetchone()["c"]


def counts(conn) -> Dict[str, Dict[str, int]]:
    out = {"total": {s: 0 for s in STATUSES}}
    rows = conn.execute(
        "SELECT queue, status, COUNT(1) AS c FROM queue_jobs GROUP BY queue, status"
    ).fetchall()
    for r in rows:
        out.setdefault(r["queue"], {s: 0 for s in STATUSES})[r["status"]] = r["c"]
        out["total"][r["status"]] += r["c"]
    return out


def exists_fingerprint(conn, queue: str, fingerprint: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM queue_jobs WHERE queue=? AND status=? AND fingerprint=? LIMIT 1",
        (queue, PENDING, fingerprint),
    ).fetchone()
    return row is not None


# ---------- Scheduler locks ----------
def acquire_lock(conn, name: str, now: float, until: float) -> bool:
    """Take a named lock unless someone else holds an unexpired one."""
    with conn:
        res = conn.execute(
            """INSERT INTO queue_locks(name, locked_until) VALUES(?, ?)
               ON CONFLICT(name) DO UPDATE SET locked_until=excluded.locked_until
               WHERE queue_locks.locked_until <= ?""",
            (name, until, now),
        )
    return res.rowcount == 1


def release_lock(conn, name: str):
    with conn:
        conn.execute("DELETE FROM queue_locks WHERE name=?", (name,))


# ---------- Scheduler trigger entries ----------
def get_scheduled(conn, queue: str) -> Optional[float]:
    row = conn.execute("SELECT run_at FROM queue_schedule WHERE queue=?", (queue,)).fetchone()
    return row["run_at"] if row else None


def set_scheduled(conn, queue: str, run_at: float) -> bool:
    """Arm a queue's next tick; an already armed entry is left alone."""
    with conn:
        res = conn.execute(
            "INSERT OR IGNORE INTO queue_schedule(queue, run_at) VALUES(?, ?)",
            (queue, run_at),
        )
    return res.rowcount == 1


def clear_scheduled(conn, queue: str):
    with conn:
        conn.execute("DELETE FROM queue_schedule WHERE queue=?", (queue,))


def take_due_schedules(conn, now: float) -> List[str]:
    """Consume every armed entry that is due. Each entry goes to one caller."""
    rows = conn.execute(
        "SELECT queue FROM queue_schedule WHERE run_at <= ? ORDER BY run_at ASC",
        (now,),
    ).fetchall()
    taken = []
    for r in rows:
        with conn:
            res = conn.execute(
                "DELETE FROM queue_schedule WHERE queue=? AND run_at <= ?",
                (r["queue"], now),
            )
        if res.rowcount == 1:
            taken.append(r["queue"])
    return taken
