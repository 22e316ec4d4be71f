"""One-time import of the pre-database ignored list (ignored.json).

The file is a JSON array of "owner/repo#123" keys. Once imported, the
ignored_json_imported flag is set and the file is never read again.
"""

import json
import logging
from pathlib import Path

from prmonitor.store.sqlite_store import MonitorStore, StoreError
from prmonitor.utils import parse_pr_key

IMPORTED_FLAG = "ignored_json_imported"

LOG = logging.getLogger("prmonitor.store.legacy")


def import_ignored_json(store: MonitorStore, path: Path) -> int:
    """Import ignored keys from path into store. Returns the number imported.

    A missing file counts as imported. An unreadable or malformed file is
    left for the next start (the flag is not set).
    """
    if store.get_state(IMPORTED_FLAG) == "true":
        return 0

    if not path.is_file():
        store.set_state(IMPORTED_FLAG, "true")
        return 0

    try:
        keys = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        LOG.warning("Failed to read %s: %s", path, e)
        return 0
    if not isinstance(keys, list):
        LOG.warning("Failed to read %s: expected a JSON list", path)
        return 0

    imported = 0
    for key in keys:
        parsed = parse_pr_key(key) if isinstance(key, str) else None
        if parsed is None:
            LOG.warning("Skip malformed ignored key %r", key)
            continue
        repo, number = parsed
        try:
            store.set_ignored(repo, number, True)
        except StoreError as e:
            LOG.warning("Failed to import ignored PR %s: %s", key, e)
            continue
        imported += 1

    LOG.info("Imported %d ignored PRs from %s", imported, path.name)
    store.set_state(IMPORTED_FLAG, "true")
    return imported
