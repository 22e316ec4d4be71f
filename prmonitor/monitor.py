"""Startup sequencing and the entry points used by the presentation layer.

Startup: import the legacy ignored list, warm the active-PR cache from the
store, pick a scheduling mode (probing notification access in auto mode),
run the one-time notification cleanup, resume recheck tasks, start the
strategy. Afterwards every write goes to the store first and the cache is
reloaded from it, so listeners only ever see complete updates.
"""

import logging
import threading
from typing import List

from prmonitor.adapters.base import GitHubError
from prmonitor.adapters.clients import ClientPool
from prmonitor.cache import ActivePRCache, Listener
from prmonitor.config import AppConfig
from prmonitor.models import PullRequestRecord
from prmonitor.notifications import NotificationPoller, initial_cleanup, probe_notifications
from prmonitor.recheck import RecheckScheduler
from prmonitor.schedulers import (
    FlatIntervalStrategy,
    NotificationStrategy,
    PriorityStrategy,
    RepoSweeper,
    SchedulingStrategy,
)
from prmonitor.store import MonitorStore, StoreError, import_ignored_json
from prmonitor.utils import parse_pr_key

LOG = logging.getLogger("prmonitor.monitor")


class Monitor:
    """Owns the cache, sweeper, recheck scheduler and the chosen strategy."""

    def __init__(self, config: AppConfig, store: MonitorStore, clients: ClientPool) -> None:
        self._config = config
        self._store = store
        self._clients = clients
        self.cache = ActivePRCache(store)
        self.sweeper = RepoSweeper(
            clients,
            store,
            self.cache,
            repos=config.repos.all(),
            authors=config.authors,
            max_age_days=config.max_age_days,
        )
        self.rechecks = RecheckScheduler(clients, store, self.cache, authors=config.authors)
        self.strategy: SchedulingStrategy | None = None

    # --- startup ---

    def start(self) -> SchedulingStrategy:
        try:
            import_ignored_json(self._store, self._config.database.legacy_ignored_path)
        except StoreError as e:
            LOG.warning("Failed to import ignored PRs: %s", e)

        self.cache.reload()
        LOG.info("Loaded %d PRs from store", len(self.cache))

        self.strategy = self._choose_strategy()
        LOG.info("Scheduling mode: %s", self.strategy.name)

        if isinstance(self.strategy, NotificationStrategy) and self._clients.default is not None:
            try:
                initial_cleanup(self._clients.default, self._store)
            except StoreError as e:
                LOG.warning("Initial notification cleanup failed: %s", e)

        self.rechecks.resume_rechecks()
        self.strategy.start()
        return self.strategy

    def stop(self) -> None:
        if self.strategy is not None:
            self.strategy.stop()

    def _choose_strategy(self) -> SchedulingStrategy:
        mode = self._config.scheduler.mode
        if mode == "priority":
            return self._priority_strategy()
        if mode == "flat":
            return self._flat_strategy()

        if probe_notifications(self._clients.default, self._store):
            return self._notification_strategy()
        if mode == "notifications":
            LOG.warning("Notifications requested but unavailable; falling back to periodic polling")
        if self._config.repos.grouped:
            return self._priority_strategy()
        return self._flat_strategy()

    def _full_refresh_seconds(self) -> float:
        return self._config.scheduler.full_refresh_interval_minutes * 60

    def _flat_strategy(self) -> FlatIntervalStrategy:
        return FlatIntervalStrategy(self.sweeper, self._full_refresh_seconds())

    def _priority_strategy(self) -> PriorityStrategy:
        return PriorityStrategy(
            self.sweeper,
            self._config.repos,
            self._config.poll_intervals,
            tick_seconds=self._config.scheduler.tick_seconds,
        )

    def _notification_strategy(self) -> NotificationStrategy:
        poller = NotificationPoller(
            self._clients.default,
            self._clients,
            self._store,
            self.cache,
            repos=self._config.repos.all(),
            authors=self._config.authors,
            username=self._resolve_username(),
            default_interval=self._config.scheduler.notification_interval_seconds,
        )
        return NotificationStrategy(poller, self.sweeper, self._full_refresh_seconds())

    def _resolve_username(self) -> str | None:
        """Tracked user for review re-request checks: config, else the token owner."""
        if self._config.github.username:
            return self._config.github.username
        try:
            login = self._clients.default.get_authenticated_login()
        except (GitHubError, NotImplementedError) as e:
            LOG.warning("Could not resolve GitHub username; muted PRs stay muted: %s", e)
            return None
        LOG.info("Tracking review requests for %s", login)
        return login or None

    # --- presentation entry points ---

    def subscribe(self, listener: Listener) -> None:
        self.cache.subscribe(listener)

    def active_prs(self) -> List[PullRequestRecord]:
        return list(self.cache.snapshot())

    def ignored_count(self) -> int:
        try:
            return self._store.count_ignored()
        except StoreError as e:
            LOG.warning("Failed to count ignored PRs: %s", e)
            return 0

    def muted_count(self) -> int:
        try:
            return self._store.count_muted()
        except StoreError as e:
            LOG.warning("Failed to count muted PRs: %s", e)
            return 0

    def refresh_now(self) -> threading.Thread:
        """Full refresh off the caller's thread; the cache listeners see the result."""
        return self._refresh_in_background()

    def _refresh(self) -> None:
        if self.strategy is not None:
            self.strategy.force_refresh()
        else:
            self.sweeper.sweep_all()

    def ignore(self, key: str) -> bool:
        """Hide a PR for good and stop rechecking it. False if key is malformed or the store failed."""
        parsed = parse_pr_key(key)
        if parsed is None:
            LOG.warning("Cannot ignore malformed PR key %r", key)
            return False
        repo, number = parsed
        try:
            self._store.set_ignored(repo, number, True)
            self._store.remove_recheck_task(repo, number)
        except StoreError as e:
            LOG.error("Error saving ignored PR %s: %s", key, e)
            return False
        LOG.info("Ignored %s", key)
        self.cache.reload()
        return True

    def mute(self, key: str) -> bool:
        """Hide a PR until review is re-requested from the tracked user."""
        parsed = parse_pr_key(key)
        if parsed is None:
            LOG.warning("Cannot mute malformed PR key %r", key)
            return False
        repo, number = parsed
        try:
            self._store.set_muted(repo, number, True)
        except StoreError as e:
            LOG.error("Error saving muted PR %s: %s", key, e)
            return False
        LOG.info("Muted %s", key)
        self.cache.reload()
        return True

    def clear_ignored(self) -> threading.Thread | None:
        """Forget ignored PRs and rediscover them with a background full refresh."""
        try:
            removed = self._store.clear_ignored()
        except StoreError as e:
            LOG.error("Error clearing ignored PRs: %s", e)
            return None
        LOG.info("Cleared %d ignored PRs", removed)
        return self._refresh_in_background()

    def clear_muted(self) -> threading.Thread | None:
        try:
            removed = self._store.clear_muted()
        except StoreError as e:
            LOG.error("Error clearing muted PRs: %s", e)
            return None
        LOG.info("Cleared %d muted PRs", removed)
        return self._refresh_in_background()

    def opened_pr(self, record: PullRequestRecord) -> bool:
        """The user opened record in the browser: recheck it on the escalating schedule."""
        return self.rechecks.schedule_recheck(record.repo, record.number)

    def _refresh_in_background(self) -> threading.Thread:
        thread = threading.Thread(target=self._refresh, name="refresh-now", daemon=True)
        thread.start()
        return thread
