"""
Queue lifecycle events and the per-application event dispatcher.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

log = logging.getLogger(__name__)


@dataclass
class RunStart:
    provider: Any
    queue: Optional[str]
    jobs: List[Any] = field(default_factory=list)


@dataclass
class RunComplete:
    provider: Any
    queue: Optional[str]
    jobs: List[Any] = field(default_factory=list)

    @property
    def succeeded(self) -> List[Any]:
        return [j for j in self.jobs if not j.has_failed()]

    @property
    def failed(self) -> List[Any]:
        return [j for j in self.jobs if j.has_failed()]


@dataclass
class JobQueued:
    provider: Any
    job: Any
    queue: Optional[str] = None
    record_id: Optional[int] = None


@dataclass
class JobProcessing:
    provider: Any
    job: Any

    def get_id(self):
        return self.job.get_id()


@dataclass
class JobProcessed:
    provider: Any
    job: Any

    def get_id(self):
        return self.job.get_id()


@dataclass
class JobFailed:
    provider: Any
    job: Any
    exception: BaseException

    def get_id(self):
        return self.job.get_id()


@dataclass
class JobRetrying:
    provider: Any
    job: Any
    exception: BaseException
    delay: int = 0

    def get_id(self):
        return self.job.get_id()


class EventDispatcher:
    """
    Typed callback registry. Handlers registered for a class also receive
    events of its subclasses. Exceptions raised by handlers propagate to the
    code that dispatched the event.
    """

    def __init__(self):
        self._listeners: Dict[type, List[Callable]] = defaultdict(list)

    def listen(self, event_type: Type, handler: Callable):
        self._listeners[event_type].append(handler)
        return handler

    def forget(self, event_type: Type):
        self._listeners.pop(event_type, None)

    def has_listeners(self, event_type: Type) -> bool:
        return any(
            issubclass(event_type, registered) and handlers
            for registered, handlers in self._listeners.items()
        )

    def dispatch(self, event):
        log.debug("dispatch %s", type(event).__name__)
        for event_type in type(event).__mro__:
            for handler in list(self._listeners.get(event_type, ())):
                handler(event)
        return event
