"""GitHub API adapters (base, REST implementation, per-org client pool)."""

from prmonitor.adapters.base import GitHubError, PlatformAdapter
from prmonitor.adapters.clients import ClientPool
from prmonitor.adapters.github import GitHubAdapter

__all__ = ["ClientPool", "GitHubAdapter", "GitHubError", "PlatformAdapter"]
