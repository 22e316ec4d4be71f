"""Escalating per-PR rechecks after the user opens a PR.

Opening a PR usually means the user is about to review it, so its state is
re-polled on a tightening-then-relaxing schedule for an hour: 10 checks one
minute apart, 10 two minutes apart, 6 five minutes apart.

The persisted RecheckTask (repo, number, started_at) is the source of truth.
A worker thread walks the schedule from started_at, so a worker resumed
after a restart knows which offsets it missed: it does one catch-up check
for all of them and continues with the rest. The WorkerRegistry only
prevents two workers for the same PR inside one process.
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Collection, Iterator, List, Set, Tuple

from prmonitor.adapters.base import GitHubError
from prmonitor.adapters.clients import ClientPool
from prmonitor.cache import ActivePRCache
from prmonitor.fetcher import PullOutcome, reconcile_pull
from prmonitor.store import MonitorStore, StoreError
from prmonitor.utils import pr_key, utc_now

LOG = logging.getLogger("prmonitor.recheck")

# (count, spacing) tiers
RECHECK_SCHEDULE: Tuple[Tuple[int, timedelta], ...] = (
    (10, timedelta(minutes=1)),
    (10, timedelta(minutes=2)),
    (6, timedelta(minutes=5)),
)

Key = Tuple[str, int]


def schedule_offsets(schedule=RECHECK_SCHEDULE) -> List[timedelta]:
    """Cumulative offsets from started_at, one per check."""
    offsets = []
    total = timedelta(0)
    for count, spacing in schedule:
        for _ in range(count):
            total += spacing
            offsets.append(total)
    return offsets


def schedule_span(schedule=RECHECK_SCHEDULE) -> timedelta:
    return sum((count * spacing for count, spacing in schedule), timedelta(0))


class WorkerRegistry:
    """Set of (repo, number) keys with a running worker; acquire is check-and-insert."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: Set[Key] = set()

    def try_acquire(self, key: Key) -> bool:
        """Claim key; False if a worker already holds it."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: Key) -> None:
        with self._lock:
            self._keys.discard(key)

    def __contains__(self, key: Key) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __iter__(self) -> Iterator[Key]:
        with self._lock:
            return iter(sorted(self._keys))


class RecheckScheduler:
    """Starts, resumes and runs recheck workers."""

    def __init__(
        self,
        clients: ClientPool,
        store: MonitorStore,
        cache: ActivePRCache,
        authors: Collection[str],
        schedule=RECHECK_SCHEDULE,
        now: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._clients = clients
        self._store = store
        self._cache = cache
        self._authors = set(authors)
        self._offsets = schedule_offsets(schedule)
        self._span = schedule_span(schedule)
        self._now = now
        self._sleep = sleep or time.sleep
        self.registry = WorkerRegistry()

    def schedule_recheck(self, repo: str, number: int) -> bool:
        """Persist a task starting now and make sure a worker runs for it.

        Re-opening a PR whose worker is already running re-arms the task; the
        running worker notices the new start time after its current sleep.
        Returns True if a new worker was started.
        """
        try:
            self._store.add_recheck_task(repo, number, started_at=self._now())
        except StoreError as e:
            LOG.warning("Failed to persist recheck for %s: %s", pr_key(repo, number), e)
            return False
        LOG.info("Recheck scheduled for %s", pr_key(repo, number))
        return self._start_worker(repo, number)

    def resume_rechecks(self) -> int:
        """Resume persisted tasks after a restart. Returns workers started.

        Tasks whose whole schedule elapsed while the process was down get one
        final check and are removed.
        """
        try:
            tasks = self._store.list_recheck_tasks()
        except StoreError as e:
            LOG.error("Failed to load recheck tasks: %s", e)
            return 0

        started = 0
        now = self._now()
        for task in tasks:
            if now - task.started_at > self._span:
                LOG.info("Recheck for %s expired while stopped; final check", task.key)
                self.check_pr(task.repo, task.number)
                self._remove_task(task.repo, task.number)
                continue
            if self._start_worker(task.repo, task.number):
                started += 1
        if tasks:
            LOG.info("Resumed %d of %d recheck tasks", started, len(tasks))
        return started

    def _start_worker(self, repo: str, number: int) -> bool:
        key = (repo, number)
        if not self.registry.try_acquire(key):
            LOG.debug("Recheck worker for %s already running", pr_key(repo, number))
            return False
        thread = threading.Thread(
            target=self._run_worker,
            args=(repo, number),
            name=f"recheck-{pr_key(repo, number)}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            self.registry.release(key)
            raise
        return True

    def _run_worker(self, repo: str, number: int) -> None:
        key = (repo, number)
        finished = None
        try:
            task = self._store.get_recheck_task(repo, number)
            started_at = task.started_at if task else None
            while started_at is not None:
                finished = started_at
                started_at = self._walk(repo, number, started_at)
                if started_at is not None:
                    LOG.info("Recheck for %s re-armed; restarting schedule", pr_key(repo, number))
        except StoreError as e:
            # Task stays persisted; the next start resumes it
            LOG.warning("Recheck worker for %s stopped: %s", pr_key(repo, number), e)
        except Exception as e:
            LOG.exception("Recheck worker for %s crashed: %s", pr_key(repo, number), e)
        finally:
            self.registry.release(key)
        self._restart_if_rearmed(repo, number, finished)

    def _restart_if_rearmed(self, repo: str, number: int, finished: datetime | None) -> None:
        """Pick up a task re-armed between the worker's last look and its release."""
        try:
            task = self._store.get_recheck_task(repo, number)
        except StoreError as e:
            LOG.warning("Failed to read recheck for %s: %s", pr_key(repo, number), e)
            return
        if task is not None and task.started_at != finished:
            self._start_worker(repo, number)

    def _walk(self, repo: str, number: int, started_at: datetime) -> datetime | None:
        """Run the schedule from started_at.

        Returns a newer started_at if the task was re-armed mid-walk, None
        when the worker is finished.
        """
        elapsed = self._now() - started_at
        missed = sum(1 for offset in self._offsets if offset <= elapsed)
        if missed:
            LOG.info("Recheck %s: catching up after %d missed checks", pr_key(repo, number), missed)
            if self._check_and_settle(repo, number):
                return None

        for offset in self._offsets[missed:]:
            self._sleep_until(started_at + offset)
            task = self._store.get_recheck_task(repo, number)
            if task is None:
                LOG.info("Recheck for %s cancelled", pr_key(repo, number))
                return None
            if task.started_at != started_at:
                return task.started_at
            if self._check_and_settle(repo, number):
                return None

        LOG.info("Recheck schedule for %s finished", pr_key(repo, number))
        self._remove_task(repo, number)
        return None

    def _sleep_until(self, moment: datetime) -> None:
        delay = (moment - self._now()).total_seconds()
        if delay > 0:
            self._sleep(delay)

    def _check_and_settle(self, repo: str, number: int) -> bool:
        """Run one check; remove the task and return True if the PR no longer needs rechecking."""
        if not self.check_pr(repo, number):
            return False
        self._remove_task(repo, number)
        return True

    def _remove_task(self, repo: str, number: int) -> None:
        try:
            self._store.remove_recheck_task(repo, number)
        except StoreError as e:
            LOG.warning("Failed to remove recheck for %s: %s", pr_key(repo, number), e)

    def check_pr(self, repo: str, number: int) -> bool:
        """Refresh one PR. Returns True when rechecking can stop.

        Terminal: ignored, closed, draft, foreign author, fully reviewed, or no
        credential for the repo. API and store failures are not terminal; the
        next offset tries again.
        """
        key = pr_key(repo, number)
        try:
            if self._store.is_ignored(repo, number):
                LOG.info("Recheck %s: ignored", key)
                return True
            client = self._clients.for_repo(repo)
            if client is None:
                return True
            pr = client.get_pull(repo, number)
            outcome = reconcile_pull(client, self._store, repo, pr, self._authors)
        except (GitHubError, StoreError) as e:
            LOG.warning("Recheck %s failed: %s", key, e)
            return False

        self._cache.reload()
        LOG.info("Recheck %s -> %s", key, outcome.value)
        return outcome is not PullOutcome.ACTIVE
