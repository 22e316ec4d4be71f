"""Shared utilities (PR keys, repo names, timestamps)."""

from datetime import UTC, datetime


def parse_iso(s: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (GitHub's trailing Z included).

    Naive values are taken as UTC. Returns None for empty or invalid input.
    """
    if not s:
        return None
    try:
        value = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def utc_now() -> datetime:
    return datetime.now(UTC)


def pr_key(repo: str, number: int) -> str:
    """Build the "owner/repo#123" key used by the presentation layer."""
    return f"{repo}#{number}"


def parse_pr_key(key: str) -> tuple[str, int] | None:
    """Split an "owner/repo#123" key into (repo, number).

    The last "#" separates repo and number. Returns None if the key has no
    repo part or the number is not a positive integer.

    Args:
        key: PR key as produced by pr_key().

    Returns:
        (repo, number) or None when the key is malformed.
    """
    repo, sep, number = key.rpartition("#")
    if not sep or not repo:
        return None
    try:
        n = int(number)
    except ValueError:
        return None
    if n <= 0:
        return None
    return repo, n


def split_repo(repo: str) -> tuple[str, str]:
    """Split "owner/name" into (owner, name); owner is empty if there is no slash."""
    owner, sep, name = repo.partition("/")
    if not sep:
        return "", repo
    return owner, name


def extract_pr_number(subject_url: str | None) -> int:
    """Return the PR number from a notification subject URL.

    Format: https://api.github.com/repos/owner/repo/pulls/123 (trailing path
    segment).

    Raises:
        ValueError: If the URL is empty or its last segment is not a number.
    """
    if not subject_url:
        raise ValueError("empty subject URL")
    last = subject_url.rstrip("/").rsplit("/", 1)[-1]
    if not last.isdigit():
        raise ValueError(f"unexpected URL format: {subject_url}")
    return int(last)
