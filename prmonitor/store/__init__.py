"""Persistent monitor state (SQLite) and the legacy ignored-list import."""

from prmonitor.store.legacy import import_ignored_json
from prmonitor.store.sqlite_store import MonitorStore, StoreError

__all__ = ["MonitorStore", "StoreError", "import_ignored_json"]
