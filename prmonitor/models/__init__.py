"""Data models for pull requests, reviews, notifications and stored records (Pydantic)."""

from prmonitor.models.notification import Notification, NotificationPage
from prmonitor.models.pull_request import Commit, PullRequest, Review
from prmonitor.models.records import PullRequestRecord, RecheckTask, ReviewState

__all__ = [
    "Commit",
    "Notification",
    "NotificationPage",
    "PullRequest",
    "PullRequestRecord",
    "RecheckTask",
    "Review",
    "ReviewState",
]
