"""Full or partial repository sweeps shared by every scheduling mode."""

import logging
import threading
from datetime import timedelta
from typing import Collection, Iterable

from prmonitor.adapters.clients import ClientPool
from prmonitor.cache import ActivePRCache
from prmonitor.fetcher import fetch_repo_prs
from prmonitor.store import MonitorStore, StoreError

LOG = logging.getLogger("prmonitor.schedulers.sweep")


class RepoSweeper:
    """Fetch a batch of repositories and replace their active records.

    A repository whose fetch or write fails keeps its previous records for
    this cycle. Repositories outside the batch are never touched; the cache
    reload merges them back in (repo, number) order.
    """

    def __init__(
        self,
        clients: ClientPool,
        store: MonitorStore,
        cache: ActivePRCache,
        repos: Iterable[str],
        authors: Collection[str],
        max_age_days: int,
    ) -> None:
        self._clients = clients
        self._store = store
        self._cache = cache
        self._repos = list(repos)
        self._authors = set(authors)
        self._max_age = timedelta(days=max_age_days)
        # Two sweeps of the same repo must not interleave their replace steps
        self._lock = threading.Lock()

    def sweep(self, repos: Iterable[str]) -> int:
        """Sweep repos; returns how many were refreshed successfully."""
        batch = list(repos)
        refreshed = 0
        with self._lock:
            for repo in batch:
                try:
                    records = fetch_repo_prs(self._clients, self._store, repo, self._authors, self._max_age)
                    if records is None:
                        continue
                    self._store.replace_active_prs_for_repo(repo, records)
                except StoreError as e:
                    LOG.warning("Store error while refreshing %s: %s", repo, e)
                    continue
                refreshed += 1
        LOG.info("Swept %d/%d repos", refreshed, len(batch))
        self._cache.reload()
        return refreshed

    def sweep_all(self) -> int:
        return self.sweep(self._repos)
