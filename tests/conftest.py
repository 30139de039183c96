"""Shared fixtures for tuplekv tests."""

import threading

import pytest

from tuplekv.components.memory_store import MemoryDatabase
from tuplekv.core.errors import StoreError


class FlakyDatabase:
    """Wraps a MemoryDatabase and fails the first `failures` commits.

    Args:
        inner: Database doing the real work
        failures: Number of commits to fail
        code: Store error code raised for each injected failure
    """

    def __init__(self, inner: MemoryDatabase, failures: int, code: int = 1020):
        self.inner = inner
        self.failures = failures
        self.code = code
        self.commit_calls = 0
        self._lock = threading.Lock()

    def create_transaction(self):
        tr = self.inner.create_transaction()
        real_commit = tr.commit

        def commit():
            with self._lock:
                self.commit_calls += 1
                inject = self.failures > 0
                if inject:
                    self.failures -= 1
            if inject:
                raise StoreError.from_code(self.code)
            real_commit()

        tr.commit = commit
        return tr

    def close(self):
        self.inner.close()


@pytest.fixture
def db():
    """Create an empty in-memory database."""
    with MemoryDatabase() as database:
        yield database


@pytest.fixture
def make_flaky_db(db):
    """Return a factory wrapping the db fixture with injected commit failures."""

    def factory(failures: int, code: int = 1020) -> FlakyDatabase:
        return FlakyDatabase(db, failures, code)

    return factory
