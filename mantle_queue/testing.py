"""
Queue fake for tests: records pushed jobs instead of storing them.

    fake = app.fake_queue()
    SendReport.dispatch(app.dispatcher, 3)
    fake.assert_pushed(SendReport)
"""

from collections import defaultdict
from typing import Callable, List, Optional, Union

from .jobs import CallableJob
from .models import DEFAULT_QUEUE
from .provider import Provider, QueueWorkerJob


def _key(job) -> str:
    if isinstance(job, CallableJob):
        return job.target
    return type(job).__qualname__


def _name(job: Union[type, str]) -> str:
    return job if isinstance(job, str) else job.__qualname__


class QueueFake(Provider):
    def __init__(self, app=None):
        self.app = app
        self.jobs = defaultdict(list)

    def push(self, job) -> bool:
        self.jobs[_key(job)].append({"job": job, "queue": getattr(job, "queue", None) or DEFAULT_QUEUE})
        return True

    def pop(self, queue: Optional[str] = None, count: int = 1) -> List[QueueWorkerJob]:
        queue = queue or DEFAULT_QUEUE
        popped = []
        for entries in self.jobs.values():
            for entry in list(entries):
                if len(popped) >= count:
                    break
                if entry["queue"] == queue:
                    entries.remove(entry)
                    popped.append(QueueWorkerJob(self, entry["job"]))
        return popped

    def in_queue(self, job, queue: Optional[str] = None) -> bool:
        queue = queue or getattr(job, "queue", None) or DEFAULT_QUEUE
        return any(e["job"] is job and e["queue"] == queue for e in self.jobs.get(_key(job), ()))

    def pending_count(self, queue: Optional[str] = None) -> int:
        queue = queue or DEFAULT_QUEUE
        return sum(1 for entries in self.jobs.values() for e in entries if e["queue"] == queue)

    # ---------- Assertions ----------
    def pushed(self, job: Union[type, str], callback: Optional[Callable] = None) -> list:
        if not self.has_pushed(job):
            return []
        callback = callback or (lambda j, q: True)
        return [e["job"] for e in self.jobs[_name(job)] if callback(e["job"], e["queue"])]

    def has_pushed(self, job: Union[type, str]) -> bool:
        return bool(self.jobs.get(_name(job)))

    def assert_pushed(self, job: Union[type, str], callback: Union[Callable, int, None] = None):
        if isinstance(callback, int):
            self.assert_pushed_times(job, callback)
            return
        assert self.pushed(job, callback), f"The expected [{_name(job)}] job was not pushed."

    def assert_pushed_times(self, job: Union[type, str], times: int = 1):
        count = len(self.pushed(job))
        assert count == times, (
            f"The expected [{_name(job)}] job was pushed {count} times instead of {times} times."
        )

    def assert_not_pushed(self, job: Union[type, str], callback: Optional[Callable] = None):
        assert not self.pushed(job, callback), f"The unexpected [{_name(job)}] job was pushed."

    def assert_nothing_pushed(self):
        assert not any(self.jobs.values()), "Jobs were pushed unexpectedly."
