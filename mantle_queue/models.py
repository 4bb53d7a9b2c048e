import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

# Record states
PENDING = "pending"
RUNNING = "running"
FAILED = "failed"
COMPLETED = "completed"

STATUSES = (PENDING, RUNNING, FAILED, COMPLETED)
TERMINAL = (FAILED, COMPLETED)

# Log events
QUEUED = "queued"
STARTING = "starting"
FINISHED = "finished"
FAILING = "failed"
RETRYING = "retrying"
COMPLETING = "completed"

DEFAULT_QUEUE = "default"


@dataclass
class LogEntry:
    event: str
    created_at: float
    data: Optional[Any] = None

    @classmethod
    def from_row(cls, row) -> "LogEntry":
        return cls(
            event=row["event"],
            created_at=row["created_at"],
            data=json.loads(row["data"]) if row["data"] else None,
        )


@dataclass
class QueueRecord:
    id: int
    job_name: str
    payload: str
    fingerprint: str
    queue: str = DEFAULT_QUEUE
    status: str = PENDING
    scheduled_at: float = 0.0
    lock_until: Optional[float] = None
    timeout: Optional[int] = None
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0
    log: List[LogEntry] = field(default_factory=list)

    @classmethod
    def from_row(cls, row, log=None) -> "QueueRecord":
        return cls(
            id=row["id"],
            job_name=row["job_name"],
            payload=row["payload"],
            fingerprint=row["fingerprint"],
            queue=row["queue"],
            status=row["status"],
            scheduled_at=row["scheduled_at"],
            lock_until=row["lock_until"],
            timeout=row["timeout"],
            attempts=row["attempts"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            log=list(log or []),
        )

    def is_locked(self, now: float) -> bool:
        return self.lock_until is not None and self.lock_until > now

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL
