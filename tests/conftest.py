"""
Shared pytest fixtures for quoth tests.

Engine tests run on in-memory SQLite; archive-level tests use real files
under tmp_path.
"""

from typing import Optional

import pytest

from quoth.api import Quoth
from quoth.codec import merge_append
from quoth.config import StoreConfig
from quoth.index import IndexEngine
from quoth.kv_store import SqliteStore


class FailingTree:
    """Tree wrapper that raises once its store's write budget runs out."""

    def __init__(self, owner: "FailingStore", real_tree):
        self._owner = owner
        self._real = real_tree

    def __getattr__(self, name):
        return getattr(self._real, name)

    def set(self, key: bytes, value: bytes) -> None:
        self._owner.spend()
        self._real.set(key, value)

    def merge(self, key: bytes, value: bytes) -> None:
        self._owner.spend()
        self._real.merge(key, value)


class FailingStore:
    """Store wrapper simulating a crash after ``fail_after`` writes."""

    def __init__(self, real_store: SqliteStore, fail_after: Optional[int] = None):
        self._real = real_store
        self.fail_after = fail_after
        self.writes = 0

    def __getattr__(self, name):
        return getattr(self._real, name)

    def spend(self) -> None:
        if self.fail_after is not None and self.writes >= self.fail_after:
            raise RuntimeError("simulated store failure")
        self.writes += 1

    def tree(self, name: str) -> FailingTree:
        return FailingTree(self, self._real.tree(name))


@pytest.fixture
def store():
    """Throwaway in-memory store with the index merge operator."""
    s = SqliteStore(":memory:", merge_operator=merge_append)
    yield s
    s.close()


@pytest.fixture
def engine(store):
    return IndexEngine(store)


@pytest.fixture
def quoth(tmp_path):
    """A real archive on disk with its config kept apart from the data."""
    config = StoreConfig(path=tmp_path / "config")
    q = Quoth(tmp_path / "archive", config=config)
    yield q
    q.close()


@pytest.fixture
def failing_store():
    """In-memory store that raises on its fourth write."""
    s = SqliteStore(":memory:", merge_operator=merge_append)
    yield FailingStore(s, fail_after=3)
    s.close()
