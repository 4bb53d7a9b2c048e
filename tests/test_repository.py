import pytest

from mantle_queue import repository

from .jobs import RecordingJob


def test_cleanup_respects_retention_and_locks(app, provider, clock):
    provider.push(RecordingJob("old-failed"))
    provider.push(RecordingJob("old-locked"))
    provider.push(RecordingJob("old-completed"))
    old_failed, old_locked, old_completed = provider.pop(count=3)
    old_failed.failed(RuntimeError("nope"))
    old_locked.failed(RuntimeError("nope"))
    old_completed.completed()

    clock.advance(1000)
    provider.push(RecordingJob("young-failed"))
    young = provider.pop()[0]
    young.failed(RuntimeError("nope"))

    # Someone holds the lock on one of the old records.
    app.conn.execute(
        "UPDATE queue_jobs SET lock_until=? WHERE id=?", (clock.now + 60, old_locked.record_id)
    )
    app.conn.commit()

    assert provider.cleanup(delete_after=500) == 2

    remaining = {r.id for r in repository.list_records(app.conn)}
    assert remaining == {old_locked.record_id, young.record_id}


def test_cleanup_keeps_pending_and_running(app, provider, clock):
    provider.push(RecordingJob("pending"))
    provider.push(RecordingJob("running"))
    clock.advance(10)
    provider.push(RecordingJob("ignored"))
    provider.pop()

    clock.advance(100_000)
    assert provider.cleanup(delete_after=10) == 0
    assert repository.count_records(app.conn) == 3


def test_cleanup_defaults_to_delete_after(make_app, clock):
    app = make_app({"delete_after": 60})
    provider = app.queue.get_provider()
    provider.push(RecordingJob("x"))
    provider.pop()[0].completed()

    clock.advance(61)
    assert provider.cleanup() == 1


def test_deleting_a_record_drops_its_log(app, provider):
    provider.push(RecordingJob("x"))
    record_id = repository.list_records(app.conn)[0].id

    assert provider.delete(record_id)
    assert repository.get_log(app.conn, record_id) == []
    assert not provider.delete(record_id)


def test_retry_requeues_only_failed_records(app, provider, clock):
    provider.push(RecordingJob("x"))
    job = provider.pop()[0]
    assert not provider.retry(job.record_id)

    job.failed(RuntimeError("nope"))
    assert provider.retry(job.record_id, delay=30)

    record = provider.find(job.record_id)
    assert record.status == "pending"
    assert record.scheduled_at == clock.now + 30
    assert record.lock_until is None
    assert [e.event for e in record.log][-2:] == ["failed", "retrying"]
    assert app.scheduler.next_scheduled() is not None

    clock.advance(30)
    assert [j.record_id for j in provider.pop()] == [job.record_id]
    assert repository.get_record(app.conn, job.record_id).attempts == 2


def test_counts_per_queue(app, provider):
    provider.push(RecordingJob("a"))
    provider.push(RecordingJob("b").on_queue("emails"))
    provider.pop()[0].completed()

    counts = repository.counts(app.conn)
    assert counts["total"]["pending"] == 1
    assert counts["total"]["completed"] == 1
    assert counts["default"]["completed"] == 1
    assert counts["emails"]["pending"] == 1


def test_named_lock_is_exclusive_until_expiry(app, clock):
    assert repository.acquire_lock(app.conn, "run", clock.now, clock.now + 10)
    assert not repository.acquire_lock(app.conn, "run", clock.now + 5, clock.now + 15)
    assert repository.acquire_lock(app.conn, "run", clock.now + 10, clock.now + 20)

    repository.release_lock(app.conn, "run")
    assert repository.acquire_lock(app.conn, "run", clock.now, clock.now + 10)


def test_due_schedules_are_taken_once(app, clock):
    repository.set_scheduled(app.conn, "a", clock.now)
    repository.set_scheduled(app.conn, "b", clock.now + 100)

    assert repository.take_due_schedules(app.conn, clock.now) == ["a"]
    assert repository.take_due_schedules(app.conn, clock.now) == []
    assert repository.get_scheduled(app.conn, "b") == clock.now + 100


def test_config_validation(app):
    assert repository.set_config(app.conn, "batch_size", "25") == "25"
    assert repository.set_config(app.conn, "queues.emails.batch_size", 5) == "5"
    assert repository.get_config(app.conn)["queues.emails.batch_size"] == "5"

    with pytest.raises(ValueError):
        repository.set_config(app.conn, "colour", "blue")
    with pytest.raises(ValueError):
        repository.set_config(app.conn, "batch_size", "many")
    with pytest.raises(ValueError):
        repository.set_config(app.conn, "queues.emails.default", "sync")


def test_stored_config_reaches_the_application(make_app):
    app = make_app()
    repository.set_config(app.conn, "batch_size", "7")

    app.reload_config()
    assert app.config["batch_size"] == "7"
    assert app.worker.config["batch_size"] == "7"
