"""
Main pytest configuration for lazycache tests.

Fixtures, configuration, and test doubles for unit and integration tests.
"""

import os

import pytest
import structlog

# Set test environment variables before importing library modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"

from lazycache.infrastructure.backends import InMemoryTagCache, MappingSession  # noqa: E402
from lazycache.services.memo import MemoContext, reset_default_context  # noqa: E402

# Configure logging for tests; loggers are not cached so capture_logs() works
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    cache_logger_on_first_use=False,
)


class FakeRedis:
    """Dict-backed stand-in for the subset of redis.Redis used by RedisTagCache."""

    def __init__(self):
        self.data = {}
        self.expirations = {}

    def get(self, name):
        return self.data.get(name)

    def set(self, name, value, ex=None, nx=False):
        if nx and name in self.data:
            return None
        self.data[name] = value
        if ex is not None:
            self.expirations[name] = ex
        else:
            self.expirations.pop(name, None)
        return True

    def mget(self, keys):
        return [self.data.get(key) for key in keys]

    def mset(self, mapping):
        self.data.update(mapping)
        return True

    def delete(self, *names):
        removed = 0
        for name in names:
            if self.data.pop(name, None) is not None:
                removed += 1
            self.expirations.pop(name, None)
        return removed


@pytest.fixture(autouse=True)
def clean_default_context():
    """Give every test a fresh process default context."""
    reset_default_context()
    yield
    reset_default_context()


@pytest.fixture
def fake_redis():
    """Dict-backed Redis client."""
    return FakeRedis()


@pytest.fixture
def shared_cache():
    """In-process shared cache capability."""
    return InMemoryTagCache()


@pytest.fixture
def session_data():
    """Backing dict of the test session."""
    return {}


@pytest.fixture
def context(shared_cache, session_data):
    """Isolated context with shared cache and session configured."""
    return MemoContext(shared_cache=shared_cache, session=MappingSession(session_data))
