"""Priority-tiered polling with jittered per-repository deadlines.

Each repository gets a next-poll deadline. A low-frequency tick sweeps only
the repositories past their deadline and moves each one to
now + interval +/- 20%. After the initial full sweep, deadlines stay
staggered inside a tier so the first regular polls do not all land on
the same tick.
"""

import logging
import random
import threading
from datetime import datetime, timedelta
from typing import Callable, List

from pydantic import BaseModel

from prmonitor.config import PollIntervalsConfig, ReposConfig
from prmonitor.schedulers.base import SchedulingStrategy
from prmonitor.schedulers.sweep import RepoSweeper
from prmonitor.utils import utc_now

JITTER_FRACTION = 0.2
DEFAULT_TICK_SECONDS = 30

LOG = logging.getLogger("prmonitor.schedulers.priority")


class RepoDeadline(BaseModel):
    """Polling state of one repository."""

    name: str
    priority: str
    interval: float  # seconds
    next_poll: datetime
    last_polled: datetime | None = None
    stagger: float = 0.0  # seconds, position inside the tier


def add_jitter(interval: float, rng: random.Random | None = None) -> float:
    """interval scaled by a uniform factor in [1 - 0.2, 1 + 0.2]."""
    r = (rng or random).random()
    return interval * (1 + JITTER_FRACTION * (2 * r - 1))


def build_deadlines(repos: ReposConfig, intervals: PollIntervalsConfig, now: datetime) -> List[RepoDeadline]:
    """Initial deadlines: the i-th of n repos in a tier starts at i * interval / (n + 1)."""
    deadlines: List[RepoDeadline] = []
    for priority, names in repos.tiers().items():
        interval = float(intervals.for_priority(priority))
        for i, name in enumerate(names):
            offset = i * interval / (len(names) + 1)
            deadlines.append(
                RepoDeadline(
                    name=name,
                    priority=priority,
                    interval=interval,
                    next_poll=now + timedelta(seconds=offset),
                    stagger=offset,
                )
            )
    return deadlines


class PriorityStrategy(SchedulingStrategy):
    """Sweep repositories when their jittered per-tier deadline passes."""

    name = "priority"

    def __init__(
        self,
        sweeper: RepoSweeper,
        repos: ReposConfig,
        intervals: PollIntervalsConfig,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        rng: random.Random | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__()
        self._sweeper = sweeper
        self._tick_seconds = tick_seconds
        self._rng = rng or random.Random()
        self._now = now
        self._lock = threading.Lock()
        self._deadlines = build_deadlines(repos, intervals, now())

    @property
    def deadlines(self) -> List[RepoDeadline]:
        with self._lock:
            return [d.model_copy() for d in self._deadlines]

    def _reschedule(self, deadline: RepoDeadline, now: datetime) -> None:
        deadline.last_polled = now
        deadline.next_poll = now + timedelta(seconds=add_jitter(deadline.interval, self._rng))

    def due_repos(self, now: datetime | None = None) -> List[str]:
        """Repos past their deadline, rescheduled as a side effect."""
        now = now or self._now()
        due = []
        with self._lock:
            for deadline in self._deadlines:
                if now >= deadline.next_poll:
                    due.append(deadline.name)
                    self._reschedule(deadline, now)
        return due

    def tick(self) -> List[str]:
        """Sweep whatever is due. Returns the swept repos."""
        due = self.due_repos()
        if due:
            LOG.debug("Polling %d due repos: %s", len(due), ", ".join(due))
            self._sweeper.sweep(due)
        return due

    def force_refresh(self) -> None:
        now = self._now()
        with self._lock:
            for deadline in self._deadlines:
                self._reschedule(deadline, now)
            names = [d.name for d in self._deadlines]
        self._sweeper.sweep(names)

    def initial_sweep(self) -> None:
        """Sweep everything, then keep the tiers staggered.

        Each repository is next due one interval after the sweep plus its
        stagger offset, so the first regular polls stay spread out.
        """
        now = self._now()
        with self._lock:
            for deadline in self._deadlines:
                deadline.last_polled = now
                deadline.next_poll = now + timedelta(seconds=deadline.interval + deadline.stagger)
            names = [d.name for d in self._deadlines]
        self._sweeper.sweep(names)

    def start(self) -> None:
        LOG.info("Priority scheduler started | repos=%d | tick=%ss", len(self._deadlines), self._tick_seconds)
        self._spawn(self._loop, "priority")

    def _loop(self) -> None:
        self.initial_sweep()
        while not self._stop.wait(self._tick_seconds):
            self.tick()
