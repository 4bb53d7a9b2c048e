"""
Job contract.

A job is any `Job` subclass with a `handle()` method. Whether it is pushed to
a queue or run in place is decided by capability: jobs that also inherit
`ShouldQueue` are queued, everything else runs synchronously.
"""

import importlib
import inspect
from typing import Callable, Optional, Union

from .errors import SerializationError


class Job:
    """Unit of work. Subclasses implement `handle()`."""

    def handle(self):
        raise NotImplementedError(f"{type(self).__name__} must implement handle()")

    def failed(self, exception: BaseException):
        """Called once when the job ends in the failed state."""

    def completed(self):
        """Called once after a successful run."""


class ShouldQueue:
    """Marker: the job may be pushed to a queue instead of running inline."""


class Queueable:
    """Queue options carried by a job. Class attributes act as defaults."""

    queue: Optional[str] = None
    connection: Optional[str] = None
    delay: int = 0
    timeout: Optional[int] = None
    tries: int = 1

    def on_queue(self, queue: str):
        self.queue = queue
        return self

    def on_connection(self, connection: str):
        self.connection = connection
        return self

    def with_delay(self, seconds: int):
        if int(seconds) < 0:
            raise ValueError("delay must be >= 0 seconds")
        self.delay = int(seconds)
        return self


# Dispatch options kept out of the payload; queue, delay and timeout live in record columns.
QUEUE_OPTIONS = ("queue", "connection", "delay", "timeout")


class Dispatchable:
    """Class-level sugar: ``SendReport.dispatch(dispatcher, report_id=3)``."""

    @classmethod
    def dispatch(cls, dispatcher, *args, **kwargs):
        job = cls(*args, **kwargs)
        dispatcher.dispatch(job)
        return job

    @classmethod
    def dispatch_if(cls, dispatcher, condition, *args, **kwargs):
        if not condition:
            return None
        return cls.dispatch(dispatcher, *args, **kwargs)

    @classmethod
    def dispatch_unless(cls, dispatcher, condition, *args, **kwargs):
        return cls.dispatch_if(dispatcher, not condition, *args, **kwargs)

    @classmethod
    def dispatch_now(cls, dispatcher, *args, **kwargs):
        job = cls(*args, **kwargs)
        dispatcher.dispatch_now(job)
        return job

    @classmethod
    def dispatch_after_response(cls, dispatcher, *args, **kwargs):
        job = cls(*args, **kwargs)
        dispatcher.dispatch_after_response(job)
        return job


def callable_path(target: Callable) -> str:
    """Import path ("pkg.mod:func") for a module-level function."""
    name = getattr(target, "__qualname__", None)
    module = getattr(target, "__module__", None)
    if not inspect.isfunction(target) or not name or not module:
        raise SerializationError(f"Only module-level functions can be queued, got {target!r}")
    if "<lambda>" in name or "<locals>" in name or "." in name:
        raise SerializationError(
            f"{module}.{name} cannot be queued: lambdas, nested functions and methods "
            "have no importable reference"
        )
    if module == "__main__":
        raise SerializationError(f"{name} is defined in __main__ and cannot be imported by a worker")
    return f"{module}:{name}"


def resolve_path(path: str):
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise SerializationError(f"Invalid import path: {path!r}")
    try:
        obj = importlib.import_module(module_name)
        for part in attr.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as e:
        raise SerializationError(f"Cannot resolve {path!r}: {e}")
    return obj


class CallableJob(Job, Queueable, ShouldQueue):
    """
    Queue a plain function with bound arguments.

    The function is stored by import path, so it must be defined at module
    level; arguments must be JSON-encodable.
    """

    def __init__(self, target: Union[str, Callable], *args, **kwargs):
        self.target = target if isinstance(target, str) else callable_path(target)
        self.args = list(args)
        self.kwargs = dict(kwargs)

    def handle(self):
        func = resolve_path(self.target)
        if not callable(func):
            raise SerializationError(f"{self.target} is not callable")
        return func(*self.args, **self.kwargs)

    def get_id(self) -> str:
        return self.target

    def __repr__(self):
        return f"CallableJob({self.target!r})"
