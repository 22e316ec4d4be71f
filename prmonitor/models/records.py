"""Records persisted by the store and the classifier result."""

from datetime import datetime

from pydantic import BaseModel

from prmonitor.utils import pr_key


class ReviewState(BaseModel):
    """Classifier output for one pull request."""

    needs_review: bool = False
    needs_reapproval: bool = False

    @property
    def needs_attention(self) -> bool:
        return self.needs_review or self.needs_reapproval


class PullRequestRecord(BaseModel):
    """PR row in the store, keyed by (repo, number)."""

    repo: str
    number: int
    title: str = ""
    author: str = ""
    url: str = ""
    needs_review: bool = False
    needs_reapproval: bool = False
    ignored: bool = False
    muted: bool = False
    last_checked: datetime | None = None

    @property
    def key(self) -> str:
        return pr_key(self.repo, self.number)

    @property
    def status(self) -> str:
        return "needs re-approval" if self.needs_reapproval else "needs review"


class RecheckTask(BaseModel):
    """Persisted escalating recheck for one PR, started when the user opened it."""

    repo: str
    number: int
    started_at: datetime

    @property
    def key(self) -> str:
        return pr_key(self.repo, self.number)
