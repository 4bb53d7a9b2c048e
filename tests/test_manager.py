import pytest

from mantle_queue import ConfigurationError, Provider
from mantle_queue.database import DatabaseProvider
from mantle_queue.sync import SyncProvider
from mantle_queue.testing import QueueFake


class CountingProvider(Provider):
    built = 0

    def __init__(self, app):
        CountingProvider.built += 1
        self.app = app

    def push(self, job):
        return True

    def pop(self, queue=None, count=1):
        return []

    def in_queue(self, job, queue=None):
        return False

    def pending_count(self, queue=None):
        return 0


def test_default_connection_from_config(app):
    assert isinstance(app.queue.get_provider(), DatabaseProvider)
    assert isinstance(app.queue.get_provider("sync"), SyncProvider)
    assert app.queue.providers() == ["database", "sync"]


def test_default_connection_can_be_configured(make_app):
    app = make_app({"default": "sync"})

    assert isinstance(app.queue.get_provider(), SyncProvider)


def test_provider_instances_are_cached(app):
    assert app.queue.get_provider() is app.queue.get_provider("database")


def test_class_providers_are_built_lazily(app):
    CountingProvider.built = 0
    app.queue.add_provider("counting", CountingProvider)
    assert CountingProvider.built == 0

    provider = app.queue.get_provider("counting")
    app.queue.get_provider("counting")

    assert CountingProvider.built == 1
    assert provider.app is app


def test_instances_can_replace_a_connection(app):
    fake = QueueFake(app)
    app.queue.get_provider("database")

    app.queue.add_provider("database", fake)

    assert app.queue.get_provider() is fake


def test_unknown_connection(app):
    with pytest.raises(ConfigurationError, match=r"No provider found for \[redis\]"):
        app.queue.get_provider("redis")


def test_rejects_non_provider_classes(app):
    with pytest.raises(ConfigurationError):
        app.queue.add_provider("bad", dict)


def test_rejects_factories_returning_non_providers(app):
    app.queue.add_provider("bad", lambda app: object())

    with pytest.raises(ConfigurationError):
        app.queue.get_provider("bad")
