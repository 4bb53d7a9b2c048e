import pytest

from mantle_queue import Application
from mantle_queue import events as ev

from . import jobs


class FrozenClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


@pytest.fixture(autouse=True)
def reset_jobs():
    jobs.RAN.clear()
    jobs.HOOKS.clear()
    yield
    jobs.RAN.clear()
    jobs.HOOKS.clear()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "queue.db")


@pytest.fixture
def make_app(db_path, clock):
    apps = []

    def _make(config=None, clock_=None):
        app = Application(db_path, config=config, clock=clock_ or clock)
        apps.append(app)
        return app

    yield _make
    for app in apps:
        app.close()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def provider(app):
    return app.queue.get_provider()


@pytest.fixture
def events(app):
    fired = []
    for event_type in (
        ev.RunStart, ev.RunComplete, ev.JobQueued, ev.JobProcessing,
        ev.JobProcessed, ev.JobFailed, ev.JobRetrying,
    ):
        app.events.listen(event_type, fired.append)
    return fired
