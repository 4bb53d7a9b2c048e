"""
Application wiring for the queue: one database connection, configuration,
an event dispatcher and the queue services built on top of them. Nothing is
global; create one Application per process (or per thread) and pass it
around.
"""

import logging
from typing import Callable, List, Optional

from . import repository
from .config import DEFAULT_CONFIG
from .database import DatabaseProvider
from .db import connect_db, init_db
from .dispatcher import Dispatcher
from .events import EventDispatcher
from .manager import QueueManager
from .scheduler import Scheduler
from .sync import SyncProvider
from .testing import QueueFake
from .utils import now_ts
from .worker import Worker

log = logging.getLogger(__name__)


class Application:
    def __init__(self, db_path=None, config: Optional[dict] = None, clock: Optional[Callable[[], float]] = None):
        init_db(db_path)
        self.conn = connect_db(db_path)
        self.clock = clock or now_ts
        self.overrides = {k: str(v) for k, v in (config or {}).items()}
        self.config = self.load_config()

        self.events = EventDispatcher()
        self.queue = QueueManager(self)
        self.register_providers(self.queue)
        self.worker = Worker(self.queue, self.events, self.config)
        self.scheduler = Scheduler(self)
        self.dispatcher = Dispatcher(self)

        self._terminating: List[Callable] = []

    def load_config(self) -> dict:
        return {**DEFAULT_CONFIG, **repository.get_config(self.conn), **self.overrides}

    def reload_config(self):
        # Mutate in place; the worker holds a reference to this dict.
        self.config.clear()
        self.config.update(self.load_config())

    def register_providers(self, manager: QueueManager):
        manager.add_provider("database", DatabaseProvider)
        manager.add_provider("sync", SyncProvider)

    def now(self) -> float:
        return self.clock()

    def fake_queue(self, name: Optional[str] = None) -> QueueFake:
        fake = QueueFake(self)
        self.queue.add_provider(name or self.queue.get_default_driver(), fake)
        return fake

    # ---------- Termination ----------
    def terminating(self, callback: Callable):
        self._terminating.append(callback)
        return self

    def terminate(self):
        """Run terminating callbacks once each, in registration order."""
        callbacks, self._terminating = self._terminating, []
        for callback in callbacks:
            callback()

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
