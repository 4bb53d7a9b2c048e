import logging
from typing import List, Optional

from .config import get_int
from .events import (
    EventDispatcher, JobFailed, JobProcessed, JobProcessing, JobRetrying,
    RunComplete, RunStart,
)
from .manager import QueueManager
from .provider import Provider, QueueWorkerJob

log = logging.getLogger(__name__)


class Worker:
    """
    Runs one batch of jobs from a provider, one job at a time. A failing job
    is recorded and reported but never stops the rest of the batch.
    """

    def __init__(self, manager: QueueManager, events: EventDispatcher, config: Optional[dict] = None):
        self.manager = manager
        self.events = events
        self.config = config if config is not None else {}

    def run(self, size: int, queue: Optional[str] = None, connection: Optional[str] = None) -> List[QueueWorkerJob]:
        provider = self.manager.get_provider(connection)
        jobs = provider.pop(queue, size)

        log.info("run started on %s: %d job(s)", queue or "default", len(jobs))
        self.events.dispatch(RunStart(provider, queue, jobs))

        for job in jobs:
            self.process(provider, job)

        self.events.dispatch(RunComplete(provider, queue, jobs))
        log.info(
            "run complete on %s: %d processed, %d failed",
            queue or "default", len(jobs), sum(1 for j in jobs if j.has_failed()),
        )
        return jobs

    def process(self, provider: Provider, job: QueueWorkerJob):
        try:
            self.events.dispatch(JobProcessing(provider, job))
            job.fire()
        except Exception as e:
            log.warning("job %s failed: %s", job.get_id(), e)
            self.handle_job_exception(provider, job, e)
            return

        job.completed()
        self.notify(JobProcessed(provider, job))

    def handle_job_exception(self, provider: Provider, job: QueueWorkerJob, e: Exception):
        # Retries are opt-in through the job's `tries` attribute.
        if job.attempts < job.tries:
            delay = get_int(self.config, "backoff_base") ** job.attempts
            job.retry(delay, exception=e)
            self.notify(JobRetrying(provider, job, e, delay))
            return

        job.failed(e)
        self.notify(JobFailed(provider, job, e))

    def notify(self, event):
        """Dispatch an event for a job whose record is already settled."""
        try:
            self.events.dispatch(event)
        except Exception:
            log.exception("listener for %s raised", type(event).__name__)
