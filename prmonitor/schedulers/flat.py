"""Flat-interval sweeping: every repository on one fixed cadence."""

import logging

from prmonitor.schedulers.base import SchedulingStrategy
from prmonitor.schedulers.sweep import RepoSweeper

DEFAULT_FULL_REFRESH_MINUTES = 30

LOG = logging.getLogger("prmonitor.schedulers.flat")


class FlatIntervalStrategy(SchedulingStrategy):
    """Sweep all repositories every interval_seconds.

    Used alone when notifications are unavailable and repos are not grouped
    by priority, and as the safety net beside the notification poller
    (with sweep_on_start=False, since that mode does its own first sweep).
    """

    name = "flat"

    def __init__(
        self,
        sweeper: RepoSweeper,
        interval_seconds: float = DEFAULT_FULL_REFRESH_MINUTES * 60,
        sweep_on_start: bool = True,
    ) -> None:
        super().__init__()
        self._sweeper = sweeper
        self._interval = interval_seconds
        self._sweep_on_start = sweep_on_start

    def start(self) -> None:
        LOG.info("Full refresh every %.0f min", self._interval / 60)
        self._spawn(self._loop, "full-refresh")

    def force_refresh(self) -> None:
        self._sweeper.sweep_all()

    def _loop(self) -> None:
        if self._sweep_on_start:
            self._sweeper.sweep_all()
        while not self._stop.wait(self._interval):
            self._sweeper.sweep_all()
