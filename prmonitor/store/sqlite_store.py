"""Durable monitor state in a local SQLite database.

Tables:
  prs       one row per (repo, number): classification flags plus the
            user's ignored/muted choices
  state     opaque key/value pairs owned by the schedulers
  rechecks  one row per PR with an escalating recheck in progress

Every operation runs under one lock in its own transaction, so callers on
any thread see either the previous or the new durable state, never a mix.
Schema changes are additive: new columns go into _COLUMN_MIGRATIONS with a
default so rows written by older versions stay readable.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator

from prmonitor.models import PullRequestRecord, RecheckTask
from prmonitor.utils import parse_iso, utc_now

LOG = logging.getLogger("prmonitor.store.sqlite_store")

MEMORY = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS prs (
    repo              TEXT NOT NULL,
    number            INTEGER NOT NULL,
    title             TEXT NOT NULL,
    author            TEXT NOT NULL,
    url               TEXT NOT NULL,
    needs_review      INTEGER NOT NULL DEFAULT 0,
    needs_reapproval  INTEGER NOT NULL DEFAULT 0,
    ignored           INTEGER NOT NULL DEFAULT 0,
    last_checked      TEXT NOT NULL,
    PRIMARY KEY (repo, number)
);
CREATE TABLE IF NOT EXISTS state (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS rechecks (
    repo        TEXT NOT NULL,
    number      INTEGER NOT NULL,
    started_at  TEXT NOT NULL,
    PRIMARY KEY (repo, number)
);
"""

# (table, column, definition) applied when the column is missing
_COLUMN_MIGRATIONS = [
    ("prs", "muted", "INTEGER NOT NULL DEFAULT 0"),
]

_ACTIVE = "ignored = 0 AND muted = 0"

_UPSERT_PR = """
INSERT INTO prs (repo, number, title, author, url, needs_review, needs_reapproval, last_checked)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (repo, number) DO UPDATE SET
    title = excluded.title,
    author = excluded.author,
    url = excluded.url,
    needs_review = excluded.needs_review,
    needs_reapproval = excluded.needs_reapproval,
    last_checked = excluded.last_checked
"""


class StoreError(Exception):
    """Raised when a store operation fails; the transaction was rolled back."""

    pass


def _pr_params(record: PullRequestRecord, checked_at: str) -> tuple:
    return (
        record.repo,
        record.number,
        record.title,
        record.author,
        record.url,
        int(record.needs_review),
        int(record.needs_reapproval),
        checked_at,
    )


class MonitorStore:
    """PR records, scheduler state and recheck tasks in one SQLite file.

    The database path defaults to ~/.config/pr-monitor/pr-monitor.db.
    Configure via config.yaml: `database.path`. Use ":memory:" in tests.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._lock = threading.RLock()
        if str(db_path) != MEMORY:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            # WAL for concurrent readers; synchronous stays FULL so a commit is on disk
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=FULL")
            self._conn.executescript(_SCHEMA)
            self._migrate()
        except sqlite3.Error as e:
            raise StoreError(f"opening database {db_path}: {e}") from e

    def _migrate(self) -> None:
        for table, column, definition in _COLUMN_MIGRATIONS:
            columns = {row["name"] for row in self._conn.execute(f"PRAGMA table_info({table})")}
            if column not in columns:
                self._conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
                LOG.info("Migrated %s: added column %s", table, column)
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # --- pull requests ---

    def upsert_pr(self, record: PullRequestRecord) -> None:
        """Insert or update classification fields; ignored/muted are left as they are."""
        with self._transaction() as conn:
            conn.execute(_UPSERT_PR, _pr_params(record, utc_now().isoformat()))

    def remove_pr(self, repo: str, number: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM prs WHERE repo = ? AND number = ?", (repo, number))

    def remove_active_prs_for_repo(self, repo: str) -> None:
        """Delete the repo's rows that are neither ignored nor muted."""
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM prs WHERE repo = ? AND {_ACTIVE}", (repo,))

    def replace_active_prs_for_repo(self, repo: str, records: Iterable[PullRequestRecord]) -> None:
        """Clear the repo's active rows and write records, in one transaction."""
        checked_at = utc_now().isoformat()
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM prs WHERE repo = ? AND {_ACTIVE}", (repo,))
            conn.executemany(_UPSERT_PR, [_pr_params(r, checked_at) for r in records])

    def load_active_prs(self) -> list[PullRequestRecord]:
        """Active records ordered by (repo, number)."""
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM prs
                WHERE {_ACTIVE} AND (needs_review = 1 OR needs_reapproval = 1)
                ORDER BY repo, number
                """
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def get_pr(self, repo: str, number: int) -> PullRequestRecord | None:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM prs WHERE repo = ? AND number = ?", (repo, number)).fetchone()
        return self._row_to_record(row) if row else None

    def _set_flag(self, column: str, repo: str, number: int, value: bool) -> None:
        with self._transaction() as conn:
            if value:
                # Placeholder row so the flag sticks before the PR is ever classified
                conn.execute(
                    f"""
                    INSERT INTO prs (repo, number, title, author, url, {column}, last_checked)
                    VALUES (?, ?, '', '', '', 1, ?)
                    ON CONFLICT (repo, number) DO UPDATE SET {column} = 1
                    """,
                    (repo, number, utc_now().isoformat()),
                )
            else:
                conn.execute(f"UPDATE prs SET {column} = 0 WHERE repo = ? AND number = ?", (repo, number))

    def _get_flag(self, column: str, repo: str, number: int) -> bool:
        with self._transaction() as conn:
            row = conn.execute(f"SELECT {column} FROM prs WHERE repo = ? AND number = ?", (repo, number)).fetchone()
        return bool(row and row[0])

    def _count_flag(self, column: str) -> int:
        with self._transaction() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM prs WHERE {column} = 1").fetchone()[0]

    def set_ignored(self, repo: str, number: int, ignored: bool = True) -> None:
        self._set_flag("ignored", repo, number, ignored)

    def set_muted(self, repo: str, number: int, muted: bool = True) -> None:
        self._set_flag("muted", repo, number, muted)

    def is_ignored(self, repo: str, number: int) -> bool:
        return self._get_flag("ignored", repo, number)

    def is_muted(self, repo: str, number: int) -> bool:
        return self._get_flag("muted", repo, number)

    def count_ignored(self) -> int:
        return self._count_flag("ignored")

    def count_muted(self) -> int:
        return self._count_flag("muted")

    def clear_ignored(self) -> int:
        """Forget every ignored PR; the next sweep rediscovers them. Returns rows removed."""
        with self._transaction() as conn:
            return conn.execute("DELETE FROM prs WHERE ignored = 1").rowcount

    def clear_muted(self) -> int:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM prs WHERE muted = 1").rowcount

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PullRequestRecord:
        return PullRequestRecord(
            repo=row["repo"],
            number=row["number"],
            title=row["title"] or "",
            author=row["author"] or "",
            url=row["url"] or "",
            needs_review=bool(row["needs_review"]),
            needs_reapproval=bool(row["needs_reapproval"]),
            ignored=bool(row["ignored"]),
            muted=bool(row["muted"]),
            last_checked=parse_iso(row["last_checked"]),
        )

    # --- scalar state ---

    def get_state(self, key: str) -> str:
        """Value for key, or "" when unset."""
        with self._transaction() as conn:
            row = conn.execute("SELECT value FROM state WHERE key = ?", (key,)).fetchone()
        return row[0] if row else ""

    def set_state(self, key: str, value: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO state (key, value) VALUES (?, ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    # --- recheck tasks ---

    def add_recheck_task(self, repo: str, number: int, started_at: datetime | None = None) -> RecheckTask:
        """Create the task, or re-arm it with a new start time if it exists."""
        task = RecheckTask(repo=repo, number=number, started_at=started_at or utc_now())
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO rechecks (repo, number, started_at) VALUES (?, ?, ?)
                ON CONFLICT (repo, number) DO UPDATE SET started_at = excluded.started_at
                """,
                (repo, number, task.started_at.isoformat()),
            )
        return task

    def remove_recheck_task(self, repo: str, number: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM rechecks WHERE repo = ? AND number = ?", (repo, number))

    def get_recheck_task(self, repo: str, number: int) -> RecheckTask | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT repo, number, started_at FROM rechecks WHERE repo = ? AND number = ?",
                (repo, number),
            ).fetchone()
        return self._row_to_task(row) if row else None

    def list_recheck_tasks(self) -> list[RecheckTask]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT repo, number, started_at FROM rechecks ORDER BY repo, number").fetchall()
        tasks = []
        for row in rows:
            task = self._row_to_task(row)
            if task is None:
                LOG.warning("Skip recheck %s#%s: bad started_at %r", row["repo"], row["number"], row["started_at"])
                continue
            tasks.append(task)
        return tasks

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> RecheckTask | None:
        started_at = parse_iso(row["started_at"])
        if started_at is None:
            return None
        return RecheckTask(repo=row["repo"], number=row["number"], started_at=started_at)
