import hashlib
import json
from typing import Tuple

from .errors import SerializationError
from .jobs import Job, QUEUE_OPTIONS, resolve_path


def job_name(job) -> str:
    get_id = getattr(job, "get_id", None)
    if callable(get_id):
        return str(get_id())
    return f"{type(job).__module__}.{type(job).__qualname__}"


def job_reference(job) -> str:
    cls = type(job)
    if "<locals>" in cls.__qualname__:
        raise SerializationError(f"{cls.__qualname__} is a local class and cannot be queued")
    return f"{cls.__module__}:{cls.__qualname__}"


def job_state(job) -> dict:
    return {k: v for k, v in vars(job).items() if k not in QUEUE_OPTIONS}


def check_state(value, path="data"):
    """Reject values JSON would store as something else (tuples, sets, non-str keys)."""
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise SerializationError(f"{path} has a non-string key {key!r}")
            check_state(item, f"{path}.{key}")
    elif isinstance(value, list):
        for i, item in enumerate(value):
            check_state(item, f"{path}[{i}]")
    elif isinstance(value, (tuple, set, frozenset)):
        raise SerializationError(f"{path} is a {type(value).__name__}; use a list")


def fingerprint(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def serialize(job) -> Tuple[str, str, str]:
    """
    Reduce a job to (payload, fingerprint, display name).

    Raises SerializationError when the job or its state is not storable.
    """
    if not isinstance(job, Job):
        raise SerializationError(f"{job!r} is not a Job instance")
    state = job_state(job)
    check_state(state, job_name(job))
    data = {"job": job_reference(job), "data": state}
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize {job_name(job)}: {e}")
    return payload, fingerprint(payload), job_name(job)


def unserialize(payload: str) -> Job:
    try:
        data = json.loads(payload)
        ref, state = data["job"], data["data"]
    except (TypeError, ValueError, KeyError) as e:
        raise SerializationError(f"Malformed job payload: {e}")
    cls = resolve_path(ref)
    if not isinstance(cls, type) or not issubclass(cls, Job):
        raise SerializationError(f"{ref} is not a Job class")
    job = cls.__new__(cls)
    job.__dict__.update(state)
    return job
