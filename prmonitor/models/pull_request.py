"""Pull request, review and commit as returned by the GitHub API."""

from datetime import datetime

from pydantic import BaseModel, Field


class PullRequest(BaseModel):
    """Pull request fields the monitor needs."""

    number: int
    title: str = ""
    state: str = "open"
    draft: bool = False
    author: str = ""
    html_url: str = ""
    created_at: datetime
    requested_reviewers: list[str] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class Review(BaseModel):
    """Submitted (or pending) review on a pull request."""

    author: str
    state: str
    submitted_at: datetime | None = None


class Commit(BaseModel):
    """Commit on a pull request; committed_at is the committer timestamp."""

    sha: str
    committed_at: datetime | None = None
