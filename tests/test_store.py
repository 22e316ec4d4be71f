"""Tests for MonitorStore (PR records, scalar state, recheck tasks)."""

import sqlite3
import threading
from pathlib import Path

import pytest

from factories import at, make_record
from prmonitor.store import MonitorStore, StoreError


class TestPullRequests:
    """upsert/remove/load and the ignored/muted flags."""

    def test_upsert_then_load_includes_record(self, store: MonitorStore) -> None:
        store.upsert_pr(make_record(number=5, title="Add login"))
        active = store.load_active_prs()
        assert [(r.repo, r.number, r.title) for r in active] == [("owner/repo", 5, "Add login")]
        assert active[0].needs_review is True
        assert active[0].last_checked is not None

    def test_upsert_is_idempotent(self, store: MonitorStore) -> None:
        record = make_record(number=5)
        store.upsert_pr(record)
        store.upsert_pr(record)
        assert len(store.load_active_prs()) == 1

    def test_upsert_updates_classification(self, store: MonitorStore) -> None:
        store.upsert_pr(make_record(number=5, needs_review=True))
        store.upsert_pr(make_record(number=5, needs_review=False, needs_reapproval=True, title="Renamed"))
        [record] = store.load_active_prs()
        assert record.needs_reapproval is True
        assert record.needs_review is False
        assert record.title == "Renamed"

    def test_upsert_never_clears_ignored_or_muted(self, store: MonitorStore) -> None:
        store.set_ignored("owner/repo", 1, True)
        store.set_muted("owner/repo", 2, True)
        store.upsert_pr(make_record(number=1))
        store.upsert_pr(make_record(number=2))
        assert store.is_ignored("owner/repo", 1)
        assert store.is_muted("owner/repo", 2)
        assert store.load_active_prs() == []

    def test_remove_pr_excludes_record(self, store: MonitorStore) -> None:
        store.upsert_pr(make_record(number=1))
        store.upsert_pr(make_record(number=2))
        store.remove_pr("owner/repo", 1)
        assert [r.number for r in store.load_active_prs()] == [2]
        assert store.get_pr("owner/repo", 1) is None

    def test_load_active_orders_by_repo_then_number(self, store: MonitorStore) -> None:
        for repo, number in [("b/repo", 1), ("a/repo", 10), ("a/repo", 2)]:
            store.upsert_pr(make_record(repo=repo, number=number))
        assert [(r.repo, r.number) for r in store.load_active_prs()] == [
            ("a/repo", 2),
            ("a/repo", 10),
            ("b/repo", 1),
        ]

    def test_load_active_skips_rows_without_flags(self, store: MonitorStore) -> None:
        """An un-ignored placeholder row never classified is not active."""
        store.set_ignored("owner/repo", 3, True)
        store.set_ignored("owner/repo", 3, False)
        assert store.get_pr("owner/repo", 3) is not None
        assert store.load_active_prs() == []

    def test_remove_active_prs_for_repo_keeps_ignored_muted_and_other_repos(self, store: MonitorStore) -> None:
        store.upsert_pr(make_record(repo="a/repo", number=1))
        store.upsert_pr(make_record(repo="a/repo", number=2))
        store.upsert_pr(make_record(repo="a/repo", number=3))
        store.upsert_pr(make_record(repo="b/repo", number=1))
        store.set_ignored("a/repo", 2, True)
        store.set_muted("a/repo", 3, True)

        store.remove_active_prs_for_repo("a/repo")

        assert store.get_pr("a/repo", 1) is None
        assert store.is_ignored("a/repo", 2)
        assert store.is_muted("a/repo", 3)
        assert [(r.repo, r.number) for r in store.load_active_prs()] == [("b/repo", 1)]

    def test_replace_active_prs_for_repo(self, store: MonitorStore) -> None:
        store.upsert_pr(make_record(repo="a/repo", number=1))
        store.upsert_pr(make_record(repo="b/repo", number=7))
        store.replace_active_prs_for_repo("a/repo", [make_record(repo="a/repo", number=4)])
        assert [(r.repo, r.number) for r in store.load_active_prs()] == [("a/repo", 4), ("b/repo", 7)]

    def test_counts_and_clear(self, store: MonitorStore) -> None:
        store.set_ignored("owner/repo", 1, True)
        store.set_ignored("owner/repo", 2, True)
        store.set_muted("owner/repo", 3, True)
        assert store.count_ignored() == 2
        assert store.count_muted() == 1

        assert store.clear_ignored() == 2
        assert store.count_ignored() == 0
        assert store.clear_muted() == 1
        assert store.count_muted() == 0

    def test_flags_default_false_for_unknown_pr(self, store: MonitorStore) -> None:
        assert store.is_ignored("owner/repo", 404) is False
        assert store.is_muted("owner/repo", 404) is False

    def test_unmute_makes_record_active_again(self, store: MonitorStore) -> None:
        store.upsert_pr(make_record(number=1))
        store.set_muted("owner/repo", 1, True)
        assert store.load_active_prs() == []
        store.set_muted("owner/repo", 1, False)
        assert [r.number for r in store.load_active_prs()] == [1]


class TestState:
    """Opaque key/value state."""

    def test_get_state_missing_returns_empty(self, store: MonitorStore) -> None:
        assert store.get_state("notifications_last_modified") == ""

    def test_set_state_overwrites(self, store: MonitorStore) -> None:
        store.set_state("notifications_poll_interval", "60")
        store.set_state("notifications_poll_interval", "120")
        assert store.get_state("notifications_poll_interval") == "120"


class TestRecheckTasks:
    """Persisted recheck tasks."""

    def test_add_list_remove(self, store: MonitorStore) -> None:
        store.add_recheck_task("owner/repo", 1, started_at=at(0))
        store.add_recheck_task("owner/repo", 2, started_at=at(-5))
        tasks = store.list_recheck_tasks()
        assert [(t.number, t.started_at) for t in tasks] == [(1, at(0)), (2, at(-5))]

        store.remove_recheck_task("owner/repo", 1)
        assert [t.number for t in store.list_recheck_tasks()] == [2]
        assert store.get_recheck_task("owner/repo", 1) is None

    def test_add_existing_task_rearms_start(self, store: MonitorStore) -> None:
        store.add_recheck_task("owner/repo", 1, started_at=at(-30))
        store.add_recheck_task("owner/repo", 1, started_at=at(0))
        tasks = store.list_recheck_tasks()
        assert len(tasks) == 1
        assert tasks[0].started_at == at(0)

    def test_add_without_start_uses_now(self, store: MonitorStore) -> None:
        task = store.add_recheck_task("owner/repo", 1)
        assert store.get_recheck_task("owner/repo", 1).started_at == task.started_at


class TestDurabilityAndSchema:
    """Writes survive reopening; old databases are migrated in place."""

    def test_writes_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "pr-monitor.db"
        first = MonitorStore(path)
        first.upsert_pr(make_record(number=9))
        first.set_state("initial_cleanup_done", "true")
        first.add_recheck_task("owner/repo", 9, started_at=at(0))
        first.close()

        second = MonitorStore(path)
        try:
            assert [r.number for r in second.load_active_prs()] == [9]
            assert second.get_state("initial_cleanup_done") == "true"
            assert second.get_recheck_task("owner/repo", 9).started_at == at(0)
        finally:
            second.close()

    def test_adds_muted_column_to_old_database(self, tmp_path: Path) -> None:
        path = tmp_path / "old.db"
        conn = sqlite3.connect(path)
        conn.execute(
            """
            CREATE TABLE prs (
                repo TEXT NOT NULL, number INTEGER NOT NULL, title TEXT NOT NULL,
                author TEXT NOT NULL, url TEXT NOT NULL,
                needs_review INTEGER NOT NULL DEFAULT 0,
                needs_reapproval INTEGER NOT NULL DEFAULT 0,
                ignored INTEGER NOT NULL DEFAULT 0,
                last_checked TEXT NOT NULL,
                PRIMARY KEY (repo, number)
            )
            """
        )
        conn.execute(
            "INSERT INTO prs VALUES ('owner/repo', 1, 'Old', 'alice', 'u', 1, 0, 0, '2024-01-01T00:00:00+00:00')"
        )
        conn.commit()
        conn.close()

        store = MonitorStore(path)
        try:
            [record] = store.load_active_prs()
            assert record.title == "Old"
            assert record.muted is False
            store.set_muted("owner/repo", 1, True)
            assert store.count_muted() == 1
        finally:
            store.close()

    def test_reopening_does_not_migrate_twice(self, tmp_path: Path) -> None:
        path = tmp_path / "pr-monitor.db"
        MonitorStore(path).close()
        MonitorStore(path).close()

    def test_failure_raises_store_error(self, tmp_path: Path) -> None:
        store = MonitorStore(tmp_path / "pr-monitor.db")
        store.close()
        with pytest.raises(StoreError):
            store.upsert_pr(make_record())

    def test_concurrent_upserts(self, store: MonitorStore) -> None:
        def write(offset: int) -> None:
            for n in range(20):
                store.upsert_pr(make_record(number=offset + n))

        threads = [threading.Thread(target=write, args=(i * 100,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.load_active_prs()) == 80
