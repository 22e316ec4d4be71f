"""Per-organization API clients with a default fallback."""

import logging
from typing import Dict

from prmonitor.adapters.base import PlatformAdapter
from prmonitor.adapters.github import GitHubAdapter
from prmonitor.config import AppConfig
from prmonitor.utils import split_repo

LOG = logging.getLogger("prmonitor.adapters.clients")


class ClientPool:
    """Resolves the API client for a repository's owning organization."""

    def __init__(
        self,
        default: PlatformAdapter | None = None,
        org_clients: Dict[str, PlatformAdapter] | None = None,
    ) -> None:
        self._default = default
        self._org_clients = dict(org_clients or {})

    @classmethod
    def from_config(cls, config: AppConfig) -> "ClientPool":
        api_url = config.github.api_url
        token = config.github_token_resolved
        default = GitHubAdapter(token=token, api_url=api_url) if token else None
        org_clients: Dict[str, PlatformAdapter] = {
            org: GitHubAdapter(token=tok, api_url=api_url) for org, tok in config.org_tokens_resolved.items()
        }
        return cls(default=default, org_clients=org_clients)

    @property
    def default(self) -> PlatformAdapter | None:
        """Client for the default credential (used for notifications)."""
        return self._default

    def for_org(self, org: str) -> PlatformAdapter | None:
        client = self._org_clients.get(org)
        if client is not None:
            return client
        if self._default is not None:
            return self._default
        LOG.warning("No client available for org %s", org)
        return None

    def for_repo(self, repo: str) -> PlatformAdapter | None:
        owner, _ = split_repo(repo)
        return self.for_org(owner)
