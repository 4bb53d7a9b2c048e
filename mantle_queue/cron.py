import logging
import signal
import threading
import time

from .app import Application
from .config import get_int
from .models import DEFAULT_QUEUE

log = logging.getLogger(__name__)

_stop = threading.Event()


def setup_signal_handlers():
    def _handler(signum, frame):
        log.info("received signal %s, stopping cron", signum)
        _stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handler)
        except ValueError:
            # not in the main thread
            pass


def cron_loop(name: str, interval=None, db_path=None, queues=(DEFAULT_QUEUE,)):
    app = Application(db_path)
    if interval is None:
        interval = get_int(app.config, "interval")

    log.info("[%s] polling every %ss", name, interval)
    try:
        while not _stop.is_set():
            try:
                results = app.scheduler.run_due()
                # Jobs pushed by other processes arm their own ticks, but a
                # periodic tick keeps queues draining if an armed entry was lost.
                for queue in queues:
                    if queue not in results:
                        results[queue] = app.scheduler.tick(queue)
                log.debug("[%s] tick results: %s", name, results)
            except Exception:
                log.exception("[%s] tick failed", name)
            _stop.wait(interval)
    finally:
        app.close()
        log.info("[%s] cron stopped.", name)


def start_cron(count: int = 1, interval=None, db_path=None, queues=(DEFAULT_QUEUE,)):
    """Start `count` trigger threads, each with its own connection."""
    setup_signal_handlers()
    _stop.clear()
    threads = []

    for i in range(count):
        t = threading.Thread(
            target=cron_loop,
            args=(f"cron-{i+1}", interval, db_path, tuple(queues)),
            daemon=True,
        )
        t.start()
        threads.append(t)
        log.info("started %s", t.name)

    try:
        while any(t.is_alive() for t in threads):
            time.sleep(0.5)
    finally:
        _stop.set()
        for t in threads:
            t.join()
        log.info("all cron threads stopped.")
