"""Fetch and classify PRs: whole repositories for sweeps, single PRs for
notifications and rechecks."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Collection, List

from prmonitor.adapters.base import GitHubError, PlatformAdapter
from prmonitor.adapters.clients import ClientPool
from prmonitor.classifier import check_review_state
from prmonitor.models import PullRequest, PullRequestRecord, ReviewState
from prmonitor.store import MonitorStore
from prmonitor.utils import utc_now

LOG = logging.getLogger("prmonitor.fetcher")


class PullOutcome(str, Enum):
    """What reconcile_pull did with a PR."""

    ACTIVE = "active"  # needs review or re-approval; record upserted
    RESOLVED = "resolved"  # fully reviewed; record removed
    GONE = "gone"  # closed, draft or foreign author; record removed


def record_from_pull(repo: str, pr: PullRequest, state: ReviewState) -> PullRequestRecord:
    return PullRequestRecord(
        repo=repo,
        number=pr.number,
        title=pr.title,
        author=pr.author,
        url=pr.html_url,
        needs_review=state.needs_review,
        needs_reapproval=state.needs_reapproval,
    )


def is_tracked(pr: PullRequest, authors: Collection[str]) -> bool:
    """Open, not a draft, and written by one of the tracked authors."""
    return pr.is_open and not pr.draft and pr.author in authors


def fetch_repo_prs(
    clients: ClientPool,
    store: MonitorStore,
    repo: str,
    authors: Collection[str],
    max_age: timedelta,
    now: datetime | None = None,
) -> List[PullRequestRecord] | None:
    """Open PRs of repo that need the user's attention.

    Skips PRs by other authors, older than max_age, drafts and ignored PRs,
    then classifies the rest. Returns None if the repo could not be listed
    (logged); the caller should leave its stored PRs untouched.
    """
    client = clients.for_repo(repo)
    if client is None:
        LOG.warning("No client available for %s", repo)
        return None

    try:
        pulls = client.list_open_pulls(repo)
    except GitHubError as e:
        LOG.warning("Error fetching PRs for %s: %s", repo, e)
        return None

    cutoff = (now or utc_now()) - max_age
    result: List[PullRequestRecord] = []
    for pr in pulls:
        if pr.author not in authors or pr.created_at < cutoff or pr.draft:
            continue
        if store.is_ignored(repo, pr.number):
            continue
        state = check_review_state(client, repo, pr)
        if state.needs_attention:
            result.append(record_from_pull(repo, pr, state))
    LOG.debug("%s: %d of %d open PRs need attention", repo, len(result), len(pulls))
    return result


def reconcile_pull(
    client: PlatformAdapter,
    store: MonitorStore,
    repo: str,
    pr: PullRequest,
    authors: Collection[str],
) -> PullOutcome:
    """Bring the stored record for one freshly fetched PR up to date."""
    if not is_tracked(pr, authors):
        store.remove_pr(repo, pr.number)
        return PullOutcome.GONE

    state = check_review_state(client, repo, pr)
    if state.needs_attention:
        store.upsert_pr(record_from_pull(repo, pr, state))
        return PullOutcome.ACTIVE
    store.remove_pr(repo, pr.number)
    return PullOutcome.RESOLVED
