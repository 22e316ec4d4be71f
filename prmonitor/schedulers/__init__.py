"""Scheduling strategies (notifications, priority-tiered, flat) and sweeps."""

from prmonitor.schedulers.base import SchedulingStrategy
from prmonitor.schedulers.flat import FlatIntervalStrategy
from prmonitor.schedulers.notification import NotificationStrategy
from prmonitor.schedulers.priority import PriorityStrategy, add_jitter, build_deadlines
from prmonitor.schedulers.sweep import RepoSweeper

__all__ = [
    "FlatIntervalStrategy",
    "NotificationStrategy",
    "PriorityStrategy",
    "RepoSweeper",
    "SchedulingStrategy",
    "add_jitter",
    "build_deadlines",
]
