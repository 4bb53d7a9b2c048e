import json

import pytest

from mantle_queue import CallableJob, SerializationError, repository
from mantle_queue.serialization import fingerprint, serialize, unserialize

from .jobs import RecordingJob, record


def test_payload_references_class_and_state_only():
    payload, digest, name = serialize(RecordingJob({"id": 3}).on_queue("emails").with_delay(5))

    assert json.loads(payload) == {"job": "tests.jobs:RecordingJob", "data": {"value": {"id": 3}}}
    assert digest == fingerprint(payload)
    assert name == "tests.jobs.RecordingJob"


def test_unserialize_rebuilds_job():
    payload, _, _ = serialize(RecordingJob([1, 2]))

    job = unserialize(payload)
    assert isinstance(job, RecordingJob)
    assert job.value == [1, 2]


def test_identical_jobs_share_a_fingerprint():
    assert serialize(RecordingJob("a"))[1] == serialize(RecordingJob("a").with_delay(60))[1]
    assert serialize(RecordingJob("a"))[1] != serialize(RecordingJob("b"))[1]


def test_unserializable_state_is_rejected():
    with pytest.raises(SerializationError):
        serialize(RecordingJob(object()))


@pytest.mark.parametrize("value", [
    {1: "a"},
    (1, 2),
    {"ids": {3, 4}},
    [{"nested": ("x",)}],
])
def test_state_json_would_alter_is_rejected(value, provider, app):
    with pytest.raises(SerializationError):
        provider.push(RecordingJob(value))

    assert repository.count_records(app.conn) == 0


def test_local_classes_are_rejected():
    class Local(RecordingJob):
        pass

    with pytest.raises(SerializationError):
        serialize(Local("x"))


def test_non_job_is_rejected():
    with pytest.raises(SerializationError):
        serialize(lambda: None)


def test_callable_job_stores_import_path():
    job = CallableJob(record, "x", flag=True)

    assert job.target == "tests.jobs:record"
    payload, _, name = serialize(job)
    assert json.loads(payload)["data"] == {"target": "tests.jobs:record", "args": ["x"], "kwargs": {"flag": True}}
    assert name == "tests.jobs:record"


def test_callable_job_rejects_lambdas_and_nested_functions():
    def nested():
        pass

    with pytest.raises(SerializationError):
        CallableJob(lambda: None)
    with pytest.raises(SerializationError):
        CallableJob(nested)


@pytest.mark.parametrize("payload", [
    "not json",
    '{"job": "tests.jobs:RecordingJob"}',
    '{"job": "json:dumps", "data": {}}',
    '{"job": "nowhere.at.all:Job", "data": {}}',
])
def test_bad_payloads_raise(payload):
    with pytest.raises(SerializationError):
        unserialize(payload)
