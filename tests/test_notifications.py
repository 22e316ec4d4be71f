"""Tests for the notification probe, initial cleanup and poller."""

import threading
from unittest.mock import MagicMock

import pytest

from factories import make_pull, make_record, notification, review
from prmonitor.adapters import ClientPool
from prmonitor.adapters.base import GitHubError
from prmonitor.cache import ActivePRCache
from prmonitor.models import NotificationPage
from prmonitor.notifications import (
    CLEANUP_DONE_KEY,
    LAST_MODIFIED_KEY,
    POLL_INTERVAL_KEY,
    NotificationPoller,
    initial_cleanup,
    is_review_requested_for,
    probe_notifications,
)
from prmonitor.store import MonitorStore


@pytest.fixture
def poller(client: MagicMock, clients: ClientPool, store: MonitorStore, cache: ActivePRCache) -> NotificationPoller:
    return NotificationPoller(
        client,
        clients,
        store,
        cache,
        repos=["owner/repo"],
        authors=["alice"],
        username="me",
    )


class TestProbe:
    def test_success_stores_poll_interval(self, client: MagicMock, store: MonitorStore) -> None:
        client.list_notifications.return_value = NotificationPage(poll_interval=120)
        assert probe_notifications(client, store) is True
        assert store.get_state(POLL_INTERVAL_KEY) == "120"
        client.list_notifications.assert_called_once_with(per_page=1)

    def test_auth_error_falls_back(self, client: MagicMock, store: MonitorStore) -> None:
        client.list_notifications.side_effect = GitHubError("403: Forbidden", status_code=403)
        assert probe_notifications(client, store) is False

    def test_other_error_falls_back(self, client: MagicMock, store: MonitorStore) -> None:
        client.list_notifications.side_effect = GitHubError("connection refused")
        assert probe_notifications(client, store) is False

    def test_no_client(self, store: MonitorStore) -> None:
        assert probe_notifications(None, store) is False


class TestInitialCleanup:
    def test_runs_once(self, client: MagicMock, store: MonitorStore) -> None:
        assert initial_cleanup(client, store) is True
        assert store.get_state(CLEANUP_DONE_KEY) == "true"
        assert initial_cleanup(client, store) is False
        client.mark_all_read.assert_called_once()

    def test_failure_retried_next_start(self, client: MagicMock, store: MonitorStore) -> None:
        client.mark_all_read.side_effect = GitHubError("500: boom", status_code=500)
        assert initial_cleanup(client, store) is False
        assert store.get_state(CLEANUP_DONE_KEY) == ""

        client.mark_all_read.side_effect = None
        assert initial_cleanup(client, store) is True


def test_is_review_requested_for_is_case_insensitive() -> None:
    pr = make_pull(requested=["Me", "bob"])
    assert is_review_requested_for(pr, "me")
    assert not is_review_requested_for(pr, "carol")
    assert not is_review_requested_for(pr, None)


class TestPollOnce:
    """One conditional request and its bookkeeping."""

    def test_not_modified_writes_nothing(self, client: MagicMock, clients: ClientPool, cache: ActivePRCache) -> None:
        store = MagicMock(spec=MonitorStore)
        store.get_state.return_value = "Mon, 03 Jun 2024 12:00:00 GMT"
        client.list_notifications.return_value = NotificationPage(not_modified=True)
        poller = NotificationPoller(client, clients, store, cache, repos=["owner/repo"], authors=["alice"])

        assert poller.poll_once() is None

        client.list_notifications.assert_called_once_with(if_modified_since="Mon, 03 Jun 2024 12:00:00 GMT")
        store.set_state.assert_not_called()
        store.upsert_pr.assert_not_called()
        store.remove_pr.assert_not_called()
        client.mark_thread_read.assert_not_called()

    def test_first_poll_sends_no_timestamp(self, poller: NotificationPoller, client: MagicMock) -> None:
        client.list_notifications.return_value = NotificationPage(last_modified="Mon, 03 Jun 2024 12:00:00 GMT")
        poller.poll_once()
        client.list_notifications.assert_called_once_with(if_modified_since=None)

    def test_persists_last_modified_and_interval(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore
    ) -> None:
        client.list_notifications.return_value = NotificationPage(
            last_modified="Mon, 03 Jun 2024 12:00:00 GMT", poll_interval=90
        )
        assert poller.poll_once() == 90
        assert store.get_state(LAST_MODIFIED_KEY) == "Mon, 03 Jun 2024 12:00:00 GMT"
        assert store.get_state(POLL_INTERVAL_KEY) == "90"
        assert poller.current_interval() == 90

    def test_follows_next_pages(self, poller: NotificationPoller, client: MagicMock, store: MonitorStore) -> None:
        client.list_notifications.return_value = NotificationPage(
            items=[notification("1", number=1)], next_url="https://api.github.com/notifications?page=2"
        )
        client.next_notifications.return_value = NotificationPage(items=[notification("2", number=2)])
        client.get_pull.side_effect = lambda repo, number: make_pull(number)

        poller.poll_once()

        assert store.get_pr("owner/repo", 1) is not None
        assert store.get_pr("owner/repo", 2) is not None
        assert [c.args[0] for c in client.mark_thread_read.call_args_list] == ["1", "2"]

    def test_next_page_error_processes_first_page(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore
    ) -> None:
        client.list_notifications.return_value = NotificationPage(
            items=[notification("1", number=1)], next_url="https://api.github.com/notifications?page=2"
        )
        client.next_notifications.side_effect = GitHubError("502: bad gateway", status_code=502)
        client.get_pull.return_value = make_pull(1)

        poller.poll_once()

        assert store.get_pr("owner/repo", 1) is not None

    def test_default_interval_without_stored_value(self, poller: NotificationPoller) -> None:
        assert poller.current_interval() == 60


class TestProcess:
    """Applying notifications to the store."""

    def test_new_pr_upserted_and_cache_reloaded(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore, cache: ActivePRCache
    ) -> None:
        client.get_pull.return_value = make_pull(5)
        assert poller.process([notification("9", number=5)]) is True
        assert [r.number for r in cache.snapshot()] == [5]
        client.get_pull.assert_called_once_with("owner/repo", 5)
        client.mark_thread_read.assert_called_once_with("9")

    def test_approved_pr_removed(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore, cache: ActivePRCache
    ) -> None:
        store.upsert_pr(make_record(number=5))
        cache.reload()
        client.get_pull.return_value = make_pull(5)
        client.list_reviews.return_value = [review("bob", "APPROVED", -1)]

        poller.process([notification("9", number=5)])

        assert store.get_pr("owner/repo", 5) is None
        assert cache.snapshot() == ()

    def test_closed_pr_removed(self, poller: NotificationPoller, client: MagicMock, store: MonitorStore) -> None:
        store.upsert_pr(make_record(number=5))
        client.get_pull.return_value = make_pull(5, state="closed")
        poller.process([notification("9", number=5)])
        assert store.get_pr("owner/repo", 5) is None

    def test_irrelevant_notifications_only_marked_read(self, poller: NotificationPoller, client: MagicMock) -> None:
        notifications = [
            notification("1", subject_type="Issue"),
            notification("2", repo="other/repo"),
            notification("3", number=None, subject_url="https://api.github.com/repos/owner/repo/pulls/abc"),
        ]
        assert poller.process(notifications) is False
        client.get_pull.assert_not_called()
        assert client.mark_thread_read.call_count == 3

    def test_ignored_pr_not_fetched(self, poller: NotificationPoller, client: MagicMock, store: MonitorStore) -> None:
        store.set_ignored("owner/repo", 5, True)
        assert poller.process([notification("9", number=5)]) is False
        client.get_pull.assert_not_called()
        client.mark_thread_read.assert_called_once_with("9")

    def test_muted_pr_stays_muted_without_rerequest(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore
    ) -> None:
        store.upsert_pr(make_record(number=5))
        store.set_muted("owner/repo", 5, True)
        client.get_pull.return_value = make_pull(5, requested=["bob"])

        assert poller.process([notification("9", number=5)]) is False
        assert store.is_muted("owner/repo", 5)

    def test_muted_pr_unmuted_on_rerequest(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore, cache: ActivePRCache
    ) -> None:
        store.upsert_pr(make_record(number=5))
        store.set_muted("owner/repo", 5, True)
        client.get_pull.return_value = make_pull(5, requested=["ME"])

        assert poller.process([notification("9", number=5)]) is True
        assert not store.is_muted("owner/repo", 5)
        assert [r.number for r in cache.snapshot()] == [5]

    def test_error_on_one_thread_does_not_stop_others(
        self, poller: NotificationPoller, client: MagicMock, store: MonitorStore
    ) -> None:
        def get_pull(repo, number):
            if number == 1:
                raise GitHubError("404: Not Found", status_code=404)
            return make_pull(number)

        client.get_pull.side_effect = get_pull
        assert poller.process([notification("1", number=1), notification("2", number=2)]) is True
        assert store.get_pr("owner/repo", 2) is not None
        assert client.mark_thread_read.call_count == 2

    def test_mark_read_failure_is_logged(self, poller: NotificationPoller, client: MagicMock) -> None:
        client.mark_thread_read.side_effect = GitHubError("500: boom", status_code=500)
        poller.process([notification("1", subject_type="Issue")])


def test_run_stops_on_event(poller: NotificationPoller, client: MagicMock, store: MonitorStore) -> None:
    """run() polls on each interval until the stop event is set."""
    store.set_state(POLL_INTERVAL_KEY, "1")
    stop = threading.Event()

    def list_notifications(**kwargs):
        stop.set()
        return NotificationPage(not_modified=True)

    client.list_notifications.side_effect = list_notifications
    thread = threading.Thread(target=poller.run, args=(stop,), daemon=True)
    thread.start()
    thread.join(timeout=5)
    assert not thread.is_alive()
    client.list_notifications.assert_called_once()
