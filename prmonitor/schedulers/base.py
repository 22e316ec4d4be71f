"""Common interface of the three scheduling modes."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List


class SchedulingStrategy(ABC):
    """Decides when to sweep which repositories.

    Exactly one strategy runs per process, chosen at startup. Workers are
    daemon threads that wait on a shared stop event between ticks.
    """

    name = "base"

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    @abstractmethod
    def start(self) -> None:
        """Start background workers."""
        ...

    @abstractmethod
    def force_refresh(self) -> None:
        """Sweep every repository now (the "Refresh Now" action)."""
        ...

    def stop(self) -> None:
        """Ask workers to exit at their next wake-up."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _spawn(self, target: Callable[[], None], name: str) -> threading.Thread:
        thread = threading.Thread(target=self._guard(target, name), name=name, daemon=True)
        self._threads.append(thread)
        thread.start()
        return thread

    @staticmethod
    def _guard(target: Callable[[], None], name: str) -> Callable[[], None]:
        log = logging.getLogger(f"prmonitor.schedulers.{name}")

        def run() -> None:
            try:
                target()
            except Exception as e:
                log.exception("Scheduler thread %s crashed: %s", name, e)

        return run
