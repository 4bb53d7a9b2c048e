"""
Durable queue provider backed by the queue_jobs table.

Records move pending -> running -> completed|failed. Several worker processes
may pop from the same table at once; the conditional claim in
`repository.claim_record` guarantees a record is held by one of them at a
time. A running record whose lock has expired is claimable again, so a
crashed worker's job is eventually re-run (at-least-once delivery).
"""

import logging
import traceback
from typing import List, Optional

from . import repository
from .config import get_int
from .events import JobQueued
from .models import (
    DEFAULT_QUEUE, FAILED, STARTING, FINISHED, FAILING, RETRYING, COMPLETING,
    QueueRecord,
)
from .errors import SerializationError
from .provider import Provider, QueueWorkerJob, invoke
from .serialization import serialize, unserialize

log = logging.getLogger(__name__)


class DatabaseProvider(Provider):
    def __init__(self, app):
        self.app = app

    @property
    def conn(self):
        return self.app.conn

    def push(self, job) -> bool:
        # Serialization errors surface here, before anything is written.
        payload, fingerprint, name = serialize(job)

        now = self.app.now()
        queue = getattr(job, "queue", None) or DEFAULT_QUEUE
        delay = int(getattr(job, "delay", 0) or 0)
        timeout = getattr(job, "timeout", None)

        record_id = repository.insert_record(
            self.conn,
            job_name=name,
            payload=payload,
            fingerprint=fingerprint,
            queue=queue,
            scheduled_at=now + delay,
            timeout=int(timeout) if timeout else None,
            now=now,
            log_data={"delay": delay} if delay else None,
        )
        log.debug("queued %s as record %s on %s (delay=%s)", name, record_id, queue, delay)

        self.app.events.dispatch(JobQueued(self, job, queue, record_id))
        return True

    def pop(self, queue: Optional[str] = None, count: int = 1) -> List["DatabaseWorkerJob"]:
        queue = queue or DEFAULT_QUEUE
        lock_duration = get_int(self.app.config, "lock_duration", queue)
        claimed: List[DatabaseWorkerJob] = []
        tried = set()

        while len(claimed) < count:
            now = self.app.now()
            candidates = repository.select_claim_candidates(
                self.conn, queue, now, count - len(claimed), exclude=tried
            )
            if not candidates:
                break
            for row in candidates:
                tried.add(row["id"])
                lock_until = now + (row["timeout"] or lock_duration)
                if not repository.claim_record(self.conn, row["id"], now, lock_until):
                    log.debug("record %s was claimed by another worker", row["id"])
                    continue
                record = repository.get_record(self.conn, row["id"])
                if record is None:
                    continue
                claimed.append(DatabaseWorkerJob(self, record))

        return claimed

    def in_queue(self, job, queue: Optional[str] = None) -> bool:
        _, fingerprint, _ = serialize(job)
        queue = queue or getattr(job, "queue", None) or DEFAULT_QUEUE
        return repository.exists_fingerprint(self.conn, queue, fingerprint)

    def pending_count(self, queue: Optional[str] = None) -> int:
        return repository.count_records(self.conn, queue or DEFAULT_QUEUE, status="pending")

    # ---------- Admin ----------
    def find(self, record_id: int) -> Optional[QueueRecord]:
        return repository.get_record(self.conn, record_id, with_log=True)

    def retry(self, record_id: int, delay: int = 0) -> bool:
        """Put a failed record back in the queue."""
        record = repository.get_record(self.conn, record_id)
        if record is None or record.status != FAILED:
            return False
        DatabaseWorkerJob(self, record).retry(delay)
        return True

    def delete(self, record_id: int) -> bool:
        return repository.delete_record(self.conn, record_id)

    def cleanup(self, delete_after: Optional[int] = None) -> int:
        if delete_after is None:
            delete_after = get_int(self.app.config, "delete_after")
        now = self.app.now()
        deleted = repository.cleanup(self.conn, older_than=now - delete_after, now=now)
        log.info("cleanup removed %d record(s) older than %ss", deleted, delete_after)
        return deleted


class DatabaseWorkerJob(QueueWorkerJob):
    def __init__(self, provider: DatabaseProvider, record: QueueRecord):
        super().__init__(provider)
        self.record = record

    @property
    def conn(self):
        return self.provider.conn

    def _now(self) -> float:
        return self.provider.app.now()

    def get_job(self):
        if self._job is None:
            self._job = unserialize(self.record.payload)
        return self._job

    def get_id(self):
        return self.record.job_name

    @property
    def record_id(self) -> int:
        return self.record.id

    @property
    def attempts(self) -> int:
        return self.record.attempts

    @property
    def tries(self) -> int:
        try:
            return int(getattr(self.get_job(), "tries", 1) or 1)
        except SerializationError:
            return 1

    def fire(self):
        repository.append_log(self.conn, self.record.id, STARTING, self._now(), {"attempt": self.attempts})
        invoke(self.get_job())
        repository.append_log(self.conn, self.record.id, FINISHED, self._now())

    def completed(self):
        now = self._now()
        repository.mark_completed(self.conn, self.record.id, now)
        repository.append_log(self.conn, self.record.id, COMPLETING, now)
        super().completed()

    def failed(self, exception: BaseException):
        now = self._now()
        repository.append_log(
            self.conn,
            self.record.id,
            FAILING,
            now,
            {
                "exception": type(exception).__name__,
                "message": str(exception),
                "trace": traceback.format_exception(type(exception), exception, exception.__traceback__),
            },
        )
        repository.mark_failed(self.conn, self.record.id, now, f"{type(exception).__name__}: {exception}")
        if self._job is None:
            # Jobs that could not be rebuilt have no hooks to call.
            self._failed = True
            self.exception = exception
            return
        super().failed(exception)

    def retry(self, delay: int = 0, exception: Optional[BaseException] = None):
        now = self._now()
        repository.append_log(self.conn, self.record.id, RETRYING, now, {"delay": delay})
        error = f"{type(exception).__name__}: {exception}" if exception else None
        repository.release_record(self.conn, self.record.id, now, now + delay, error)
        self.exception = exception
        self.provider.app.events.dispatch(
            JobQueued(self.provider, self._job, self.record.queue, self.record.id)
        )
