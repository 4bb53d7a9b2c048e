from .app import Application
from .dispatcher import Dispatcher, dispatch
from .errors import ConfigurationError, QueueError, SerializationError
from .events import (
    EventDispatcher, JobFailed, JobProcessed, JobProcessing, JobQueued, JobRetrying,
    RunComplete, RunStart,
)
from .jobs import CallableJob, Dispatchable, Job, Queueable, ShouldQueue
from .manager import QueueManager
from .provider import Provider, QueueWorkerJob
from .scheduler import Scheduler
from .worker import Worker

__all__ = [
    "Application",
    "CallableJob",
    "ConfigurationError",
    "Dispatchable",
    "Dispatcher",
    "EventDispatcher",
    "Job",
    "JobFailed",
    "JobProcessed",
    "JobProcessing",
    "JobQueued",
    "JobRetrying",
    "Provider",
    "QueueError",
    "QueueManager",
    "QueueWorkerJob",
    "Queueable",
    "RunComplete",
    "RunStart",
    "Scheduler",
    "SerializationError",
    "ShouldQueue",
    "Worker",
    "dispatch",
]
