"""GitHub REST API adapter."""

from datetime import UTC, datetime
from typing import Any, Dict, Iterator, List

import requests

from prmonitor.adapters.base import GitHubError, PlatformAdapter
from prmonitor.models import Commit, Notification, NotificationPage, PullRequest, Review
from prmonitor.utils import parse_iso

PER_PAGE = 100


def _pull_from_api(data: Dict[str, Any]) -> PullRequest:
    user = data.get("user") or {}
    reviewers = [r.get("login", "") for r in (data.get("requested_reviewers") or []) if isinstance(r, dict)]
    return PullRequest(
        number=data["number"],
        title=data.get("title") or "",
        state=data.get("state", "open"),
        draft=bool(data.get("draft")),
        author=user.get("login", ""),
        html_url=data.get("html_url") or "",
        created_at=parse_iso(data.get("created_at")) or datetime.now(UTC),
        requested_reviewers=reviewers,
    )


def _review_from_api(data: Dict[str, Any]) -> Review:
    user = data.get("user") or {}
    return Review(
        author=user.get("login", ""),
        state=data.get("state", ""),
        submitted_at=parse_iso(data.get("submitted_at")),
    )


def _commit_from_api(data: Dict[str, Any]) -> Commit:
    committer = (data.get("commit") or {}).get("committer") or {}
    return Commit(
        sha=data.get("sha", ""),
        committed_at=parse_iso(committer.get("date")),
    )


def _notification_from_api(data: Dict[str, Any]) -> Notification:
    subject = data.get("subject") or {}
    repository = data.get("repository") or {}
    return Notification(
        id=str(data["id"]),
        subject_type=subject.get("type", ""),
        subject_url=subject.get("url"),
        repository=repository.get("full_name", ""),
    )


def _poll_interval(resp: requests.Response) -> int | None:
    value = resp.headers.get("X-Poll-Interval")
    if not value:
        return None
    try:
        secs = int(value)
    except ValueError:
        return None
    return secs if secs > 0 else None


def _next_url(resp: requests.Response) -> str | None:
    return (resp.links.get("next") or {}).get("url")


class GitHubAdapter(PlatformAdapter):
    """GitHub API implementation."""

    def __init__(self, token: str, api_url: str = "https://api.github.com") -> None:
        self._api_url = api_url.rstrip("/")
        self._session = requests.Session()
        self._session.headers["Authorization"] = f"token {token}"
        self._session.headers["Accept"] = "application/vnd.github.v3+json"

    def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> requests.Response:
        """Send a request; path may be absolute (pagination cursors)."""
        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self._api_url}{path}" if path.startswith("/") else f"{self._api_url}/{path}"
        try:
            resp = self._session.request(method, url, params=params, json=json, headers=headers, timeout=30)
        except requests.RequestException as e:
            raise GitHubError(f"{method} {url}: {e}") from e
        if resp.status_code >= 400:
            msg = resp.text or resp.reason or str(resp.status_code)
            try:
                msg = resp.json().get("message", msg)
            except Exception:
                pass
            raise GitHubError(f"{resp.status_code}: {msg}", status_code=resp.status_code)
        return resp

    def _paginate(self, path: str, params: Dict[str, Any] | None = None) -> Iterator[Dict[str, Any]]:
        resp = self._request("GET", path, params=params)
        while True:
            for item in resp.json() or []:
                yield item
            url = _next_url(resp)
            if not url:
                return
            resp = self._request("GET", url)

    def list_open_pulls(self, repo: str) -> List[PullRequest]:
        items = self._paginate(f"/repos/{repo}/pulls", params={"state": "open", "per_page": PER_PAGE})
        return [_pull_from_api(d) for d in items]

    def get_pull(self, repo: str, pr_number: int) -> PullRequest:
        resp = self._request("GET", f"/repos/{repo}/pulls/{pr_number}")
        return _pull_from_api(resp.json())

    def list_reviews(self, repo: str, pr_number: int) -> List[Review]:
        items = self._paginate(f"/repos/{repo}/pulls/{pr_number}/reviews", params={"per_page": PER_PAGE})
        return [_review_from_api(d) for d in items]

    def list_commits(self, repo: str, pr_number: int) -> List[Commit]:
        items = self._paginate(f"/repos/{repo}/pulls/{pr_number}/commits", params={"per_page": PER_PAGE})
        return [_commit_from_api(d) for d in items]

    def _notification_page(self, resp: requests.Response) -> NotificationPage:
        if resp.status_code == 304:
            return NotificationPage(not_modified=True)
        return NotificationPage(
            items=[_notification_from_api(d) for d in (resp.json() or [])],
            last_modified=resp.headers.get("Last-Modified"),
            poll_interval=_poll_interval(resp),
            next_url=_next_url(resp),
        )

    def list_notifications(
        self,
        if_modified_since: str | None = None,
        per_page: int = 50,
    ) -> NotificationPage:
        params: Dict[str, Any] = {"per_page": per_page}
        headers = {"If-Modified-Since": if_modified_since} if if_modified_since else None
        resp = self._request("GET", "/notifications", params=params, headers=headers)
        return self._notification_page(resp)

    def next_notifications(self, next_url: str) -> NotificationPage:
        return self._notification_page(self._request("GET", next_url))

    def mark_thread_read(self, thread_id: str) -> None:
        self._request("PATCH", f"/notifications/threads/{thread_id}")

    def mark_all_read(self, last_read_at: str) -> None:
        self._request("PUT", "/notifications", json={"last_read_at": last_read_at, "read": True})

    def get_authenticated_login(self) -> str:
        return self._request("GET", "/user").json().get("login", "")
