"""Pytest configuration and fixtures.

Provides key stores for every backend (temporary SQLite files and JSON files),
a controllable clock, and a service wired to both.

IMPORTANT: Environment variables must be set BEFORE importing app code.
``keygate.config.settings`` builds its settings instance at import time, so
the env var setup happens at module level and app imports are deferred to
inside fixtures.
"""

import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

if "KEYGATE_SQLITE_PATH" not in os.environ:
    _test_base_dir = tempfile.mkdtemp(prefix="keygate_test_")
    os.environ["KEYGATE_SQLITE_PATH"] = f"{_test_base_dir}/test.db"
    os.environ["KEYGATE_JSON_PATH"] = f"{_test_base_dir}/keys.json"

os.environ.setdefault("KEYGATE_SEARCH_SECRET", "test-search-secret-0123456789")
os.environ.setdefault("KEYGATE_SWEEP_INTERVAL", "0")
os.environ.setdefault("KEYGATE_LOG_FORMAT", "text")
os.environ.setdefault("KEYGATE_LOG_LEVEL", "warning")

TEST_SEARCH_SECRET = os.environ["KEYGATE_SEARCH_SECRET"]
CLOCK_START = datetime(2025, 1, 15, 10, 30, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = CLOCK_START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_store(backend: str, directory: Path):
    """Build an uninitialized store of the given backend under ``directory``."""
    from keygate.db_sqlite.keys.repository import SQLiteKeyStore
    from keygate.features.keys.memory_store import InMemoryKeyStore, JsonFileKeyStore

    if backend == "sqlite":
        return SQLiteKeyStore(f"sqlite+aiosqlite:///{directory / 'keys.db'}")
    if backend == "json":
        return JsonFileKeyStore(directory / "keys.json")
    return InMemoryKeyStore()


@pytest_asyncio.fixture(params=["memory", "sqlite", "json"])
async def store(request, tmp_path: Path):
    """Every store backend in turn, each on fresh temporary storage."""
    key_store = make_store(request.param, tmp_path)
    await key_store.init()
    yield key_store
    await key_store.close()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path):
    """SQLite store on a temporary database file, one per test."""
    key_store = make_store("sqlite", tmp_path)
    await key_store.init()
    yield key_store
    await key_store.close()


@pytest_asyncio.fixture
async def json_store(tmp_path: Path):
    key_store = make_store("json", tmp_path)
    await key_store.init()
    yield key_store
    await key_store.close()


@pytest_asyncio.fixture
async def memory_store():
    key_store = make_store("memory", Path(tempfile.gettempdir()))
    await key_store.init()
    yield key_store
    await key_store.close()


@pytest.fixture
def service(store, clock):
    from keygate.features.keys.service import KeyService

    return KeyService(store, clock=clock, default_length=32)
