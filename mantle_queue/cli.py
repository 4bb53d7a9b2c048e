import json
import logging
import sqlite3

import click

from . import repository
from .app import Application
from .config import get_int
from .cron import start_cron
from .errors import QueueError
from .jobs import CallableJob, resolve_path
from .events import JobFailed, JobProcessed, JobProcessing, JobRetrying, RunComplete, RunStart
from .models import STATUSES, FAILED
from .utils import parse_delay_to_seconds, to_iso


@click.group(help="mantle-queue: background jobs on a database-backed queue")
@click.option("--db", "db_path", default=None, envvar="MANTLE_QUEUE_DB",
              help="Queue database file (default: queue.db)")
@click.option("-v", "--verbose", is_flag=True, help="Log queue activity to stderr")
@click.pass_context
def cli(ctx, db_path, verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"db_path": db_path}


def open_app(ctx) -> Application:
    return Application(ctx.obj["db_path"])


def fail(message):
    click.secho(f"Error: {message}", fg="red")
    raise SystemExit(1)


def provider_for(app, connection=None):
    provider = app.queue.get_provider(connection)
    if not hasattr(provider, "find"):
        raise QueueError(f"Connection [{connection or app.queue.get_default_driver()}] has no stored jobs")
    return provider


# ---------- Push ----------
def parse_arg(value: str):
    try:
        return json.loads(value)
    except ValueError:
        return value


@cli.command("push", help="Queue a module-level function, e.g. `push myapp.tasks:send_report 42`")
@click.argument("target")
@click.argument("args", nargs=-1)
@click.option("--queue", default=None, help="Queue name (default: default)")
@click.option("--connection", default=None, help="Connection name, defaults to the default config")
@click.option("--delay", "delay_str", default=None,
              help="Run after a delay, e.g. 20s, 5m, 1h30m, 2d3h")
@click.pass_context
def push_cmd(ctx, target, args, queue, connection, delay_str):
    app = open_app(ctx)
    try:
        if not callable(resolve_path(target)):
            raise QueueError(f"{target} is not callable")
        job = CallableJob(target, *[parse_arg(a) for a in args])
        if queue:
            job.on_queue(queue)
        if connection:
            job.on_connection(connection)
        if delay_str:
            job.with_delay(parse_delay_to_seconds(delay_str))

        app.dispatcher.dispatch(job)
        click.secho(
            f"Queued {target} on {job.queue or 'default'} "
            f"({'delay=' + delay_str if delay_str else 'run_at=now'})",
            fg="green",
        )
    except (QueueError, ValueError, RuntimeError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


# ---------- Worker ----------
@cli.command("run", help="Run one batch of jobs from a queue")
@click.argument("queue")
@click.option("--count", type=int, default=None, help="Batch size, defaults to batch_size config")
@click.option("--connection", default=None, help="Connection name, defaults to the default config")
@click.pass_context
def run_cmd(ctx, queue, count, connection):
    app = open_app(ctx)
    try:
        # Pipe the worker events back to the console.
        app.events.listen(RunStart, lambda e: click.echo(f"Run started: {e.queue}"))
        app.events.listen(JobProcessing, lambda e: click.echo(f"Queue item started: {e.get_id()}"))
        app.events.listen(JobProcessed, lambda e: click.secho(f"Queue item complete: {e.get_id()}", fg="green"))
        app.events.listen(
            JobRetrying,
            lambda e: click.secho(f"Queue item released: {e.get_id()} (retry in {e.delay}s)", fg="yellow"),
        )
        app.events.listen(
            JobFailed, lambda e: click.secho(f"Queue item failed: {e.get_id()}: {e.exception}", fg="red")
        )
        app.events.listen(RunComplete, lambda e: click.echo(f"Run complete: {e.queue}"))

        size = count if count is not None else get_int(app.config, "batch_size", queue)
        app.worker.run(size, queue, connection)
    except (QueueError, ValueError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


@cli.command("tick", help="Fire the scheduler for a queue, as the cron trigger does")
@click.argument("queue", default="default")
@click.pass_context
def tick_cmd(ctx, queue):
    app = open_app(ctx)
    try:
        click.echo(app.scheduler.tick(queue))
    except (QueueError, ValueError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


@cli.command("cron", help="Poll the scheduler until interrupted")
@click.option("--count", type=int, default=1, show_default=True, help="Number of trigger threads")
@click.option("--interval", type=int, default=None, help="Seconds between polls, defaults to interval config")
@click.option("--queue", "queues", multiple=True, default=("default",), show_default=True)
@click.pass_context
def cron_cmd(ctx, count, interval, queues):
    click.secho(f"Starting {count} cron thread(s). Press Ctrl+C to stop…", fg="cyan")
    start_cron(count, interval=interval, db_path=ctx.obj["db_path"], queues=queues)
    click.secho("Cron stopped.", fg="yellow")


@cli.command("cleanup", help="Delete finished jobs older than the retention window")
@click.option("--older-than", "older_than", default=None,
              help="Retention, e.g. 3600, 12h, 7d. Defaults to delete_after config")
@click.pass_context
def cleanup_cmd(ctx, older_than):
    app = open_app(ctx)
    try:
        seconds = parse_delay_to_seconds(older_than) if older_than else None
        deleted = provider_for(app).cleanup(seconds)
        click.secho(f"Deleted {deleted} job(s).", fg="green")
    except (QueueError, ValueError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


# ---------- Jobs ----------
def echo_record(r):
    click.echo(
        f"{r.id:>6} | {r.queue:<10} | {r.status:<9} | attempts={r.attempts} "
        f"| at={to_iso(r.scheduled_at)} | lock={to_iso(r.lock_until)} | {r.job_name}"
        + (f" | error={r.last_error}" if r.last_error else "")
    )


@cli.command("list", help="List queued jobs")
@click.option("--queue", default=None)
@click.option("--status", type=click.Choice(STATUSES), default=None)
@click.pass_context
def list_cmd(ctx, queue, status):
    app = open_app(ctx)
    try:
        rows = repository.list_records(app.conn, queue=queue, status=status)
    finally:
        app.close()

    if not rows:
        click.echo("No jobs.")
        return
    for r in rows:
        echo_record(r)


@cli.command("status", help="Job counts per queue and status")
@click.pass_context
def status_cmd(ctx):
    app = open_app(ctx)
    try:
        click.echo(json.dumps(repository.counts(app.conn), indent=2))
    finally:
        app.close()


@cli.command("show", help="Show a job and its log")
@click.argument("job_id", type=int)
@click.pass_context
def show_cmd(ctx, job_id):
    app = open_app(ctx)
    try:
        record = provider_for(app).find(job_id)
        if record is None:
            raise QueueError(f"Job {job_id} not found.")
        echo_record(record)
        click.echo(f"payload: {record.payload}")
        for entry in record.log:
            line = f"  {to_iso(entry.created_at)} {entry.event}"
            data, trace = entry.data, None
            if isinstance(data, dict) and "trace" in data:
                trace = "".join(data["trace"]).rstrip()
                data = {k: v for k, v in data.items() if k != "trace"}
            if data:
                line += f" {json.dumps(data)}"
            click.echo(line)
            if trace:
                click.echo(trace)
    except (QueueError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


# ---------- Failed jobs ----------
@cli.command("failed", help="List failed jobs")
@click.option("--queue", default=None)
@click.pass_context
def failed_cmd(ctx, queue):
    app = open_app(ctx)
    try:
        rows = repository.list_records(app.conn, queue=queue, status=FAILED)
    finally:
        app.close()

    if not rows:
        click.echo("No failed jobs.")
        return
    for r in rows:
        click.echo(f"{r.id} | {r.queue} | attempts={r.attempts} | error={r.last_error} | {r.job_name}")


@cli.command("retry", help="Re-queue a failed job")
@click.argument("job_id", type=int)
@click.option("--delay", "delay_str", default=None, help="Delay before it runs, e.g. 30s, 5m")
@click.pass_context
def retry_cmd(ctx, job_id, delay_str):
    app = open_app(ctx)
    try:
        delay = parse_delay_to_seconds(delay_str) if delay_str else 0
        if not provider_for(app).retry(job_id, delay):
            raise QueueError(f"Job {job_id} is not in a failed state.")
        click.secho(f"Re-queued job {job_id}.", fg="green")
    except (QueueError, ValueError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


@cli.command("delete", help="Delete a job")
@click.argument("job_id", type=int)
@click.pass_context
def delete_cmd(ctx, job_id):
    app = open_app(ctx)
    try:
        if not provider_for(app).delete(job_id):
            raise QueueError(f"Job {job_id} not found.")
        click.secho(f"Deleted job {job_id}.", fg="green")
    except (QueueError, sqlite3.Error) as e:
        fail(e)
    finally:
        app.close()


# ---------- Config ----------
@cli.group("config", help="Configuration")
def config_group():
    pass


@config_group.command("get")
@click.pass_context
def config_get(ctx):
    app = open_app(ctx)
    try:
        click.echo(json.dumps(repository.get_config(app.conn), indent=2, sort_keys=True))
    finally:
        app.close()


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set_cmd(ctx, key, value):
    app = open_app(ctx)
    try:
        value = repository.set_config(app.conn, key, value)
        click.secho(f"Config updated: {key}={value}", fg="green")
    except ValueError as e:
        fail(e)
    finally:
        app.close()


def main():
    cli()
