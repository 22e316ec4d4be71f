"""Notification-driven updates.

Polls GET /notifications with If-Modified-Since so an unchanged feed costs
no rate limit, turns pull-request notifications for tracked repos into
targeted PR refreshes, and marks every processed thread read so the
conditional request stays meaningful.
"""

import logging
import threading
from typing import Collection, List

from prmonitor.adapters.base import GitHubError, PlatformAdapter
from prmonitor.adapters.clients import ClientPool
from prmonitor.cache import ActivePRCache
from prmonitor.fetcher import reconcile_pull
from prmonitor.models import Notification, PullRequest
from prmonitor.store import MonitorStore, StoreError
from prmonitor.utils import extract_pr_number, utc_now

LAST_MODIFIED_KEY = "notifications_last_modified"
POLL_INTERVAL_KEY = "notifications_poll_interval"
CLEANUP_DONE_KEY = "initial_cleanup_done"

DEFAULT_INTERVAL_SECONDS = 60

LOG = logging.getLogger("prmonitor.notifications")


def probe_notifications(client: PlatformAdapter | None, store: MonitorStore) -> bool:
    """Return True if the token can read notifications.

    A 401/403 means the token lacks the notifications scope; any failure
    makes the caller fall back to periodic polling.
    """
    if client is None:
        LOG.info("No default GitHub token; notifications unavailable")
        return False
    try:
        page = client.list_notifications(per_page=1)
    except GitHubError as e:
        if e.is_auth_error:
            LOG.warning(
                "GitHub token needs 'notifications' scope. Update your token at https://github.com/settings/tokens"
            )
        else:
            LOG.warning("Notification access check failed: %s", e)
        return False

    if page.poll_interval:
        try:
            store.set_state(POLL_INTERVAL_KEY, str(page.poll_interval))
        except StoreError as e:
            LOG.warning("Failed to save poll interval: %s", e)
    return True


def initial_cleanup(client: PlatformAdapter, store: MonitorStore) -> bool:
    """Mark every existing notification read, once per installation.

    Returns True if the cleanup ran now. Failures are logged and retried on
    the next start since the flag is only set after success.
    """
    if store.get_state(CLEANUP_DONE_KEY) == "true":
        return False
    LOG.info("Running initial notification cleanup...")
    try:
        client.mark_all_read(utc_now().isoformat())
    except GitHubError as e:
        LOG.warning("Failed to mark all notifications as read: %s", e)
        return False
    store.set_state(CLEANUP_DONE_KEY, "true")
    LOG.info("Marked all notifications as read")
    return True


def is_review_requested_for(pr: PullRequest, username: str | None) -> bool:
    if not username:
        return False
    wanted = username.lower()
    return any(r.lower() == wanted for r in pr.requested_reviewers)


class NotificationPoller:
    """Conditional long-poll loop over the notification feed."""

    def __init__(
        self,
        client: PlatformAdapter,
        clients: ClientPool,
        store: MonitorStore,
        cache: ActivePRCache,
        repos: Collection[str],
        authors: Collection[str],
        username: str | None = None,
        default_interval: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._client = client
        self._clients = clients
        self._store = store
        self._cache = cache
        self._repos = set(repos)
        self._authors = set(authors)
        self._username = username
        self._default_interval = default_interval

    def current_interval(self) -> int:
        """Server-suggested interval if one was stored, else the configured default."""
        try:
            stored = self._store.get_state(POLL_INTERVAL_KEY)
        except StoreError as e:
            LOG.warning("Failed to read poll interval: %s", e)
            stored = ""
        if stored.isdigit() and int(stored) > 0:
            return int(stored)
        return self._default_interval

    def run(self, stop: threading.Event) -> None:
        """Poll until stop is set, adopting X-Poll-Interval when GitHub sends one."""
        interval = self.current_interval()
        LOG.info("Notification poller started | interval=%ss", interval)
        while not stop.wait(interval):
            try:
                new_interval = self.poll_once()
            except (GitHubError, StoreError) as e:
                LOG.warning("Notification poll error: %s", e)
                continue
            if new_interval and new_interval != interval:
                LOG.info("Notification poll interval %ss -> %ss", interval, new_interval)
                interval = new_interval

    def poll_once(self) -> int | None:
        """One conditional request plus processing. Returns a new interval if GitHub suggested one."""
        last_modified = self._store.get_state(LAST_MODIFIED_KEY) or None
        page = self._client.list_notifications(if_modified_since=last_modified)
        if page.not_modified:
            LOG.debug("Notifications not modified since %s", last_modified)
            return None

        if page.last_modified:
            self._store.set_state(LAST_MODIFIED_KEY, page.last_modified)
        new_interval = None
        if page.poll_interval:
            self._store.set_state(POLL_INTERVAL_KEY, str(page.poll_interval))
            new_interval = page.poll_interval

        notifications = list(page.items)
        next_url = page.next_url
        while next_url:
            try:
                more = self._client.next_notifications(next_url)
            except GitHubError as e:
                LOG.warning("Failed to fetch remaining notification pages: %s", e)
                break
            notifications.extend(more.items)
            next_url = more.next_url

        if notifications:
            LOG.debug("Processing %d notifications", len(notifications))
        self.process(notifications)
        return new_interval

    def process(self, notifications: List[Notification]) -> bool:
        """Apply notifications to the store. Returns True if any record changed."""
        updated = False
        for n in notifications:
            try:
                updated = self._process_one(n) or updated
            except (GitHubError, StoreError) as e:
                LOG.warning("Error processing notification %s (%s): %s", n.id, n.repository, e)
            self._mark_read(n.id)
        if updated:
            self._cache.reload()
        return updated

    def _process_one(self, n: Notification) -> bool:
        """Handle one thread; the caller marks it read afterwards."""
        if not n.is_pull_request or n.repository not in self._repos:
            return False

        repo = n.repository
        try:
            number = extract_pr_number(n.subject_url)
        except ValueError as e:
            LOG.warning("Couldn't extract PR number from %s: %s", n.subject_url, e)
            return False

        if self._store.is_ignored(repo, number):
            return False

        client = self._clients.for_repo(repo)
        if client is None:
            return False
        pr = client.get_pull(repo, number)

        if self._store.is_muted(repo, number):
            if not is_review_requested_for(pr, self._username):
                return False
            LOG.info("Un-muting %s#%s: review re-requested", repo, number)
            self._store.set_muted(repo, number, False)

        outcome = reconcile_pull(client, self._store, repo, pr, self._authors)
        LOG.info("%s#%s -> %s (notification)", repo, number, outcome.value)
        return True

    def _mark_read(self, thread_id: str) -> None:
        try:
            self._client.mark_thread_read(thread_id)
        except GitHubError as e:
            LOG.warning("Failed to mark thread %s as read: %s", thread_id, e)
