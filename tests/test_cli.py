import json
import sqlite3

import pytest
from click.testing import CliRunner

from mantle_queue import Application, repository
from mantle_queue.cli import cli

from .jobs import RAN, FailingJob, RecordingJob


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def seeded(db_path):
    with Application(db_path) as app:
        app.dispatcher.dispatch(RecordingJob("ok"))
        app.dispatcher.dispatch(FailingJob("bad"))
        app.dispatcher.dispatch(RecordingJob("mail").on_queue("emails"))
    return db_path


def invoke(runner, db_path, *args):
    return runner.invoke(cli, ["--db", db_path, *args])


def test_run_processes_queue_and_echoes_events(runner, seeded):
    result = invoke(runner, seeded, "run", "default")

    assert result.exit_code == 0, result.output
    assert "Run started: default" in result.output
    assert "Queue item complete: tests.jobs.RecordingJob" in result.output
    assert "Queue item failed: tests.jobs.FailingJob: job bad exploded" in result.output
    assert "Run complete: default" in result.output
    assert RAN == ["ok", ("failing", "bad")]


def test_run_respects_count(runner, seeded):
    result = invoke(runner, seeded, "run", "default", "--count", "1")

    assert result.exit_code == 0, result.output
    assert RAN == ["ok"]


def test_run_unknown_connection(runner, seeded):
    result = invoke(runner, seeded, "run", "default", "--connection", "redis")

    assert result.exit_code == 1
    assert "No provider found for [redis]" in result.output


def test_status_and_list(runner, seeded):
    status = json.loads(invoke(runner, seeded, "status").output)
    assert status["total"]["pending"] == 3
    assert status["emails"]["pending"] == 1

    listing = invoke(runner, seeded, "list", "--queue", "emails").output
    assert "tests.jobs.RecordingJob" in listing
    assert len(listing.strip().splitlines()) == 1


def test_failed_retry_and_delete(runner, seeded):
    invoke(runner, seeded, "run", "default")

    failed = invoke(runner, seeded, "failed").output
    assert "RuntimeError: job bad exploded" in failed
    job_id = int(failed.split("|")[0])

    shown = invoke(runner, seeded, "show", str(job_id)).output
    assert "failed" in shown
    assert "Traceback" in shown

    assert invoke(runner, seeded, "retry", str(job_id)).exit_code == 0
    assert invoke(runner, seeded, "failed").output.strip() == "No failed jobs."

    again = invoke(runner, seeded, "retry", str(job_id))
    assert again.exit_code == 1
    assert "not in a failed state" in again.output

    assert invoke(runner, seeded, "delete", str(job_id)).exit_code == 0
    assert invoke(runner, seeded, "show", str(job_id)).exit_code == 1


def test_cleanup_removes_finished_jobs(runner, seeded):
    invoke(runner, seeded, "run", "default")

    result = invoke(runner, seeded, "cleanup", "--older-than", "0")

    assert result.exit_code == 0, result.output
    assert "Deleted 2 job(s)." in result.output
    with Application(seeded) as app:
        assert repository.count_records(app.conn) == 1


def test_tick(runner, seeded):
    result = invoke(runner, seeded, "tick", "emails")

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "idle"
    assert RAN == ["mail"]


def test_config_get_and_set(runner, db_path):
    result = invoke(runner, db_path, "config", "set", "batch_size", "5")
    assert result.exit_code == 0
    assert "batch_size=5" in result.output

    assert json.loads(invoke(runner, db_path, "config", "get").output)["batch_size"] == "5"

    bad = invoke(runner, db_path, "config", "set", "nope", "1")
    assert bad.exit_code == 1
    assert "Allowed keys" in bad.output


def test_push_queues_a_function(runner, db_path):
    result = invoke(runner, db_path, "push", "tests.jobs:record", '{"n": 1}', "--queue", "emails", "--delay", "1m")

    assert result.exit_code == 0, result.output
    assert "Queued tests.jobs:record on emails (delay=1m)" in result.output
    with Application(db_path) as app:
        record = repository.list_records(app.conn, queue="emails")[0]
        assert json.loads(record.payload)["data"]["args"] == [{"n": 1}]
        assert record.scheduled_at - record.created_at == pytest.approx(60)


def test_push_rejects_unknown_targets(runner, db_path):
    result = invoke(runner, db_path, "push", "tests.jobs:missing")

    assert result.exit_code == 1
    assert "Cannot resolve" in result.output


def test_push_reports_database_errors(runner, db_path, monkeypatch):
    def broken_log(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repository, "_write_log", broken_log)

    result = invoke(runner, db_path, "push", "tests.jobs:record", "1")

    assert result.exit_code == 1
    assert "Error: DB error while inserting job: database is locked" in result.output
