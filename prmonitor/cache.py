"""In-memory copy of the store's active PRs for the presentation layer."""

import logging
import threading
from typing import Callable, List, Sequence, Tuple

from prmonitor.models import PullRequestRecord
from prmonitor.store import MonitorStore, StoreError

LOG = logging.getLogger("prmonitor.cache")

Listener = Callable[[Sequence[PullRequestRecord]], None]


class ActivePRCache:
    """Ordered active PRs, replaced whole on every reload.

    Load and replace happen under one lock so two concurrent reloads cannot
    store an older snapshot over a newer one. Listeners are called one
    reload at a time, each with the snapshot current when its turn comes,
    so the last call a listener sees always carries the latest snapshot.
    Readers get an immutable tuple and never see a partial update.
    """

    def __init__(self, store: MonitorStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        # Re-entrant: a listener may trigger another reload
        self._notify_lock = threading.RLock()
        self._records: Tuple[PullRequestRecord, ...] = ()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        """Call listener with the new snapshot after every successful reload."""
        self._listeners.append(listener)

    def snapshot(self) -> Tuple[PullRequestRecord, ...]:
        with self._lock:
            return self._records

    def __len__(self) -> int:
        return len(self.snapshot())

    def reload(self) -> bool:
        """Reload from the store and notify listeners. False if the store failed."""
        with self._lock:
            try:
                records = tuple(self._store.load_active_prs())
            except StoreError as e:
                LOG.error("Error loading PRs from store: %s", e)
                return False
            self._records = records
        self._notify()
        return True

    def _notify(self) -> None:
        with self._notify_lock:
            records = self.snapshot()
            for listener in list(self._listeners):
                try:
                    listener(records)
                except Exception as e:
                    LOG.exception("PR listener failed: %s", e)
