"""Decide whether a pull request needs review or re-approval.

1. No reviews: needs review.
2. Keep the latest review per reviewer.
3. No approving latest review: needs review.
4. A commit committed after the newest approval: needs re-approval.
5. Otherwise fully reviewed.

Fetch failures are handled asymmetrically: if reviews cannot be fetched the
PR is reported as needing review (surface it), but if commits cannot be
fetched after an approval was found the PR is reported as reviewed
(suppress it). tests/test_classifier.py pins both outcomes.
"""

import logging
from datetime import UTC, datetime
from typing import Dict, Iterable, List

from prmonitor.adapters.base import GitHubError, PlatformAdapter
from prmonitor.models import Commit, PullRequest, Review, ReviewState

APPROVED = "APPROVED"

LOG = logging.getLogger("prmonitor.classifier")

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _submitted(review: Review) -> datetime:
    return review.submitted_at or _EPOCH


def latest_reviews(reviews: Iterable[Review]) -> Dict[str, Review]:
    """Latest review per reviewer by submission time; on ties the later one in the list wins."""
    latest: Dict[str, Review] = {}
    for review in reviews:
        existing = latest.get(review.author)
        if existing is None or _submitted(review) >= _submitted(existing):
            latest[review.author] = review
    return latest


def latest_approval_time(reviews: Iterable[Review]) -> datetime | None:
    """Newest submission time among approving latest reviews, None if nobody approves."""
    approvals = [_submitted(r) for r in latest_reviews(reviews).values() if r.state == APPROVED]
    return max(approvals) if approvals else None


def has_commit_after(commits: Iterable[Commit], moment: datetime) -> bool:
    return any(c.committed_at is not None and c.committed_at > moment for c in commits)


def classify(reviews: List[Review], commits: List[Commit]) -> ReviewState:
    """Pure classification from already fetched reviews and commits."""
    if not reviews:
        return ReviewState(needs_review=True)
    approved_at = latest_approval_time(reviews)
    if approved_at is None:
        return ReviewState(needs_review=True)
    if has_commit_after(commits, approved_at):
        return ReviewState(needs_reapproval=True)
    return ReviewState()


def check_review_state(client: PlatformAdapter, repo: str, pr: PullRequest) -> ReviewState:
    """Classify a PR, fetching reviews and (only after an approval) commits."""
    try:
        reviews = client.list_reviews(repo, pr.number)
    except GitHubError as e:
        LOG.warning("Error fetching reviews for %s#%s: %s", repo, pr.number, e)
        return ReviewState(needs_review=True)

    # Commits only matter once somebody approved; skip the request otherwise
    if latest_approval_time(reviews) is None:
        return classify(reviews, [])

    try:
        commits = client.list_commits(repo, pr.number)
    except GitHubError as e:
        LOG.warning("Error fetching commits for %s#%s: %s", repo, pr.number, e)
        return ReviewState()

    return classify(reviews, commits)
