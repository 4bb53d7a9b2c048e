import abc
import logging
from typing import List, Optional

from .jobs import Job
from .serialization import job_name

log = logging.getLogger(__name__)


def invoke(job):
    """Run a job's entry point: `handle()` for jobs, a plain call for callables."""
    if isinstance(job, Job) or hasattr(job, "handle"):
        return job.handle()
    if callable(job):
        return job()
    raise TypeError(f"{job!r} has no handle() and is not callable")


class Provider(abc.ABC):
    """Backend binding queue names to storage."""

    @abc.abstractmethod
    def push(self, job) -> bool:
        """Store a job for later processing."""

    @abc.abstractmethod
    def pop(self, queue: Optional[str] = None, count: int = 1) -> List["QueueWorkerJob"]:
        """Claim up to `count` due jobs, oldest first."""

    @abc.abstractmethod
    def in_queue(self, job, queue: Optional[str] = None) -> bool:
        """Whether an identical job is already waiting in the queue."""

    @abc.abstractmethod
    def pending_count(self, queue: Optional[str] = None) -> int:
        """Number of jobs waiting in the queue."""


class QueueWorkerJob:
    """
    A job handed to the worker by a provider. Tracks the outcome of one
    attempt; providers with storage override the state transitions.
    """

    def __init__(self, provider: Provider, job=None):
        self.provider = provider
        self._job = job
        self._failed = False
        self._completed = False
        self.exception: Optional[BaseException] = None

    def get_job(self):
        return self._job

    def get_id(self):
        return job_name(self.get_job())

    @property
    def attempts(self) -> int:
        return 1

    @property
    def tries(self) -> int:
        # Without storage there is nothing to release a job back to.
        return 1

    def fire(self):
        invoke(self.get_job())

    def completed(self):
        self._completed = True
        self._call_hook("completed")

    def failed(self, exception: BaseException):
        self._failed = True
        self.exception = exception
        self._call_hook("failed", exception)

    def retry(self, delay: int = 0, exception: Optional[BaseException] = None):
        raise NotImplementedError(f"{type(self.provider).__name__} cannot retry jobs")

    def has_failed(self) -> bool:
        return self._failed

    def is_completed(self) -> bool:
        return self._completed

    def _call_hook(self, name: str, *args):
        hook = getattr(self.get_job(), name, None)
        if not callable(hook):
            return
        try:
            hook(*args)
        except Exception:
            log.exception("%s hook of job %s raised", name, self.get_id())

    def __repr__(self):
        return f"<{type(self).__name__} {self.get_id()}>"
