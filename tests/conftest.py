"""Shared test fixtures for PlayCast test suite."""

import pytest
from fakes import TEST_MIRRORS, FakeUpstream

from playcast.config import Config, ServerConfig
from playcast.server.app import create_app
from playcast.server.database import Database
from playcast.server.queue_manager import PlaybackQueue
from playcast.server.queue_store import QueueStore
from playcast.server.sources.facade import ResolutionFacade
from playcast.server.sources.mirrors import MirrorPool
from playcast.server.sources.resolver import ProviderResolver, default_dialects


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def make_resolver(upstream):
    """Build a ProviderResolver wired to the fake upstream."""
    def build(mirrors=None, dialects=None, **kwargs):
        pool = MirrorPool(mirrors if mirrors is not None else TEST_MIRRORS)
        kwargs.setdefault("timeout", 2.0)
        return ProviderResolver(
            pool,
            dialects=dialects if dialects is not None else default_dialects(),
            transport=upstream.transport,
            **kwargs,
        )
    return build


@pytest.fixture
def facade(make_resolver):
    return ResolutionFacade(make_resolver())


@pytest.fixture
def db(tmp_path):
    """Create a fresh test database."""
    return Database(str(tmp_path / "test.db"))


@pytest.fixture
def store(db):
    return QueueStore(db)


@pytest.fixture
def queue():
    """An in-memory queue with no persistence."""
    return PlaybackQueue()


@pytest.fixture
def app(tmp_path, facade):
    """Create a Flask test app whose facade talks to the fake upstream."""
    config = Config(server=ServerConfig(
        data_dir=str(tmp_path / "data"),
        db_file=str(tmp_path / "test.db"),
    ))
    app = create_app(config, facade=facade)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create a Flask test client."""
    return app.test_client()
