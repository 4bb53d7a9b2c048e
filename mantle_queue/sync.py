from typing import List, Optional

from .events import JobFailed, JobProcessed, JobProcessing
from .provider import Provider, QueueWorkerJob


class SyncProvider(Provider):
    """Runs pushed jobs immediately, in the caller's thread."""

    def __init__(self, app):
        self.app = app

    def push(self, job) -> bool:
        worker_job = QueueWorkerJob(self, job)
        events = self.app.events

        events.dispatch(JobProcessing(self, worker_job))
        try:
            worker_job.fire()
        except Exception as e:
            worker_job.failed(e)
            events.dispatch(JobFailed(self, worker_job, e))
            raise
        worker_job.completed()
        events.dispatch(JobProcessed(self, worker_job))
        return True

    def pop(self, queue: Optional[str] = None, count: int = 1) -> List[QueueWorkerJob]:
        return []

    def in_queue(self, job, queue: Optional[str] = None) -> bool:
        return False

    def pending_count(self, queue: Optional[str] = None) -> int:
        return 0
