"""
Bridge between a periodic trigger (cron, a systemd timer, the `cron` CLI
loop) and the worker.

Each queue has at most one armed tick in the queue_schedule table. A tick
runs one batch under a per-queue overlap lock and re-arms itself while jobs
are left, so a backlog drains faster than the trigger's base interval. If
the trigger stops firing, jobs stay in the table untouched until it resumes.
"""

import logging
from typing import Dict, Optional

from . import repository
from .config import get_int
from .events import JobQueued
from .models import DEFAULT_QUEUE

log = logging.getLogger(__name__)

REARMED = "rearmed"
IDLE = "idle"
SKIPPED = "skipped"


class Scheduler:
    EVENT = "mantle_queue"

    def __init__(self, app):
        self.app = app
        app.events.listen(JobQueued, self.on_job_queued)

    @property
    def conn(self):
        return self.app.conn

    def lock_name(self, queue: str) -> str:
        return f"{self.EVENT}:{queue}"

    def on_job_queued(self, event: JobQueued):
        self.schedule(event.queue, get_int(self.app.config, "delay", event.queue or DEFAULT_QUEUE))

    def schedule(self, queue: Optional[str] = None, delay: int = 0) -> bool:
        """Arm the next tick for a queue unless one is already armed."""
        queue = queue or DEFAULT_QUEUE
        if repository.set_scheduled(self.conn, queue, self.app.now() + delay):
            log.debug("scheduled %s in %ss", queue, delay)
        return True

    def unschedule(self, queue: Optional[str] = None):
        repository.clear_scheduled(self.conn, queue or DEFAULT_QUEUE)

    def next_scheduled(self, queue: Optional[str] = None) -> Optional[float]:
        return repository.get_scheduled(self.conn, queue or DEFAULT_QUEUE)

    def tick(self, queue: Optional[str] = None) -> str:
        queue = queue or DEFAULT_QUEUE
        name = self.lock_name(queue)
        now = self.app.now()
        until = now + get_int(self.app.config, "overlap_lock", queue)

        if not repository.acquire_lock(self.conn, name, now, until):
            log.info("run for %s already in progress, skipping", queue)
            return SKIPPED

        try:
            self.app.worker.run(get_int(self.app.config, "batch_size", queue), queue)
        finally:
            repository.release_lock(self.conn, name)

        return REARMED if self.schedule_next_run(queue) else IDLE

    def schedule_next_run(self, queue: Optional[str] = None) -> bool:
        """
        Arm a follow-up tick if the queue still has pending jobs, otherwise
        clear any armed tick. Returns whether a follow-up was armed.
        """
        queue = queue or DEFAULT_QUEUE
        provider = self.app.queue.get_provider()

        if not provider.pending_count(queue):
            self.unschedule(queue)
            return False

        return self.schedule(queue, get_int(self.app.config, "delay", queue))

    def run_due(self, now: Optional[float] = None) -> Dict[str, str]:
        """Tick every queue whose armed time has come."""
        now = self.app.now() if now is None else now
        results = {}
        for queue in repository.take_due_schedules(self.conn, now):
            results[queue] = self.tick(queue)
        return results
