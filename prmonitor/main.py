"""PR Monitor entry point.

Two commands: run (keep the local view of PRs needing attention up to
date, logging the active list whenever it changes) and list (print the
persisted active PRs and exit). Usage: prmonitor run | prmonitor list.
"""

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Sequence

from prmonitor.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from prmonitor.logging import MonitorLogging
from prmonitor.models import PullRequestRecord

COMMANDS = ("run", "list")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI with optional subcommand (run | list)."""
    argv = argv if argv is not None else sys.argv[1:]
    sub = "run"
    rest = list(argv)
    if argv and not argv[0].startswith("-") and argv[0] in COMMANDS:
        sub = argv[0]
        rest = argv[1:]

    parser = argparse.ArgumentParser(
        prog="prmonitor",
        description="PR Monitor - track pull requests that need your review",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only load and validate config, then exit",
    )
    parsed = parser.parse_args(rest)
    parsed.subcommand = sub
    return parsed


def format_pr(pr: PullRequestRecord) -> str:
    return f"[{pr.repo}] #{pr.number}: {pr.title} ({pr.status}) by @{pr.author} {pr.url}"


def _log_active(prs: Sequence[PullRequestRecord]) -> None:
    log = logging.getLogger("prmonitor.main")
    if not prs:
        log.info("No PRs need your attention")
        return
    log.info("%d PRs need your attention", len(prs))
    for pr in prs:
        log.info("  %s", format_pr(pr))


def run_monitor(config: AppConfig, stop: threading.Event | None = None) -> int:
    """Start the monitor and block until stop is set (or Ctrl+C)."""
    from prmonitor.adapters import ClientPool
    from prmonitor.monitor import Monitor
    from prmonitor.store import MonitorStore

    log = logging.getLogger("prmonitor.main")
    clients = ClientPool.from_config(config)
    store = MonitorStore(config.database.path)
    monitor = Monitor(config, store, clients)
    monitor.subscribe(_log_active)

    log.info(
        "PR Monitor started | repos=%d | authors=%s | db=%s",
        len(config.repos.all()),
        ",".join(config.authors),
        config.database.path,
    )
    stop = stop or threading.Event()
    try:
        monitor.start()
        _log_active(monitor.active_prs())
        stop.wait()
    finally:
        monitor.stop()
        store.close()
    return 0


def list_active(config: AppConfig) -> int:
    """Print active PRs from the store without touching the API."""
    from prmonitor.store import MonitorStore

    store = MonitorStore(config.database.path)
    try:
        prs = store.load_active_prs()
        ignored, muted = store.count_ignored(), store.count_muted()
    finally:
        store.close()
    for pr in prs:
        print(format_pr(pr))
    print(f"{len(prs)} need attention, {ignored} ignored, {muted} muted")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point: dispatch to run or list."""
    args = parse_args(argv)

    config_path = args.config
    if not config_path.is_file() and config_path == DEFAULT_CONFIG_PATH:
        if Path("config.example.yaml").is_file():
            config_path = Path("config.example.yaml")
            logging.basicConfig(level=logging.INFO)
            logging.getLogger("prmonitor").warning("%s not found, using config.example.yaml", DEFAULT_CONFIG_PATH)

    try:
        config = load_config(config_path)
    except Exception as e:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger("prmonitor").error("Failed to load config %s: %s", config_path, e)
        return 1
    MonitorLogging(config.logging).setup()
    log = logging.getLogger("prmonitor")

    if args.subcommand == "list":
        try:
            return list_active(config)
        except Exception as e:
            log.exception("Failed to read store: %s", e)
            return 1

    problems = config.problems()
    if problems:
        for problem in problems:
            log.error("Config: %s", problem)
        return 1

    if args.check:
        print("Config OK:", len(config.repos.all()), "repos,", len(config.authors), "authors")
        return 0

    try:
        return run_monitor(config)
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        log.exception("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
