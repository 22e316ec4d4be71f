"""Notification thread and one page of the notification feed."""

from pydantic import BaseModel, Field


class Notification(BaseModel):
    """Unread notification thread."""

    id: str
    subject_type: str
    subject_url: str | None = None
    repository: str

    @property
    def is_pull_request(self) -> bool:
        return self.subject_type == "PullRequest"


class NotificationPage(BaseModel):
    """One response from GET /notifications.

    not_modified is set when the server answered 304 to If-Modified-Since;
    items, last_modified and poll_interval are then empty.
    """

    items: list[Notification] = Field(default_factory=list)
    not_modified: bool = False
    last_modified: str | None = None
    poll_interval: int | None = None
    next_url: str | None = None
