"""Notification-driven mode: poller plus a flat safety-net sweep."""

import logging

from prmonitor.notifications import NotificationPoller
from prmonitor.schedulers.base import SchedulingStrategy
from prmonitor.schedulers.flat import FlatIntervalStrategy
from prmonitor.schedulers.sweep import RepoSweeper

LOG = logging.getLogger("prmonitor.schedulers.notification")


class NotificationStrategy(SchedulingStrategy):
    """Initial full sweep, then notifications with a periodic full sweep."""

    name = "notifications"

    def __init__(
        self,
        poller: NotificationPoller,
        sweeper: RepoSweeper,
        full_refresh_seconds: float,
    ) -> None:
        super().__init__()
        self._poller = poller
        self._sweeper = sweeper
        self._safety_net = FlatIntervalStrategy(sweeper, full_refresh_seconds, sweep_on_start=False)

    def start(self) -> None:
        self._spawn(self._poll_loop, "notifications")
        self._safety_net.start()

    def stop(self) -> None:
        super().stop()
        self._safety_net.stop()

    def force_refresh(self) -> None:
        self._sweeper.sweep_all()

    def _poll_loop(self) -> None:
        self._sweeper.sweep_all()
        self._poller.run(self._stop)
