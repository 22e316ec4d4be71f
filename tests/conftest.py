"""Shared fixtures: a real SQLite store per test and a mocked GitHub client."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from prmonitor.adapters import ClientPool, PlatformAdapter
from prmonitor.cache import ActivePRCache
from prmonitor.store import MonitorStore


@pytest.fixture
def store(tmp_path: Path):
    s = MonitorStore(tmp_path / "pr-monitor.db")
    yield s
    s.close()


@pytest.fixture
def cache(store: MonitorStore) -> ActivePRCache:
    return ActivePRCache(store)


@pytest.fixture
def client() -> MagicMock:
    """Client whose PRs have no reviews (so they need review) by default."""
    c = MagicMock(spec=PlatformAdapter)
    c.list_reviews.return_value = []
    c.list_commits.return_value = []
    c.list_open_pulls.return_value = []
    return c


@pytest.fixture
def clients(client: MagicMock) -> ClientPool:
    return ClientPool(default=client)
