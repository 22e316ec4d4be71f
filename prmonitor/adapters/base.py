"""Abstract base for the GitHub API capability the monitor consumes."""

from abc import ABC, abstractmethod
from typing import List

from prmonitor.models import Commit, NotificationPage, PullRequest, Review


class GitHubError(Exception):
    """Raised when a GitHub API call fails (HTTP error or network failure)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_auth_error(self) -> bool:
        """True for 401/403: bad token or missing scope."""
        return self.status_code in (401, 403)


class PlatformAdapter(ABC):
    """Pull request and notification operations used by the schedulers."""

    @abstractmethod
    def list_open_pulls(self, repo: str) -> List[PullRequest]:
        """List open pull requests of a repository (all pages)."""
        ...

    @abstractmethod
    def get_pull(self, repo: str, pr_number: int) -> PullRequest:
        """Fetch a single pull request."""
        ...

    @abstractmethod
    def list_reviews(self, repo: str, pr_number: int) -> List[Review]:
        """List reviews on a pull request (all pages)."""
        ...

    @abstractmethod
    def list_commits(self, repo: str, pr_number: int) -> List[Commit]:
        """List commits on a pull request (all pages)."""
        ...

    @abstractmethod
    def list_notifications(
        self,
        if_modified_since: str | None = None,
        per_page: int = 50,
    ) -> NotificationPage:
        """Fetch the first page of notifications, conditionally."""
        ...

    @abstractmethod
    def next_notifications(self, next_url: str) -> NotificationPage:
        """Fetch a following page using the cursor from a previous page."""
        ...

    @abstractmethod
    def mark_thread_read(self, thread_id: str) -> None:
        """Mark one notification thread as read."""
        ...

    @abstractmethod
    def mark_all_read(self, last_read_at: str) -> None:
        """Mark every notification up to last_read_at as read."""
        ...

    def get_authenticated_login(self) -> str:
        """Login of the token owner. Override if needed."""
        raise NotImplementedError("get_authenticated_login")
