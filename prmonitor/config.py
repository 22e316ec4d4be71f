"""Configuration loading from YAML and environment.

Secrets (tokens) are taken from environment variables or from files
(Docker secrets). Never put real tokens in config files committed to the
repo.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_DIR = Path.home() / ".config" / "pr-monitor"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.yaml"

PRIORITIES = ("high", "medium", "low")


def _read_secret(env_key: str, file_env_key: str) -> str | None:
    """Read secret from env var or from file path in env (e.g. Docker
    secrets)."""
    value = _current_env.get(env_key)
    if value:
        return value.strip()
    file_path = _current_env.get(file_env_key)
    if file_path:
        return Path(file_path).read_text().strip()
    return None


# Injected by load_config so validators can read env/file
_current_env: dict[str, str] = {}


def _is_placeholder(value: str | None) -> bool:
    return not value or value.startswith("${") or value.startswith("$")


class GitHubConfig(BaseSettings):
    """GitHub API credentials and identity."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_", extra="ignore")

    token: str | None = Field(default=None, description="Default PAT; use env or secret file")
    api_url: str = Field(default="https://api.github.com", description="API base URL")
    username: str | None = Field(
        default=None,
        description="Tracked user login (review re-requests); resolved via GET /user when empty",
    )
    org_tokens: dict[str, str] = Field(
        default_factory=dict,
        description="Per-organization tokens; orgs not listed use the default token",
    )


class ReposConfig(BaseSettings):
    """Tracked repositories grouped by priority tier."""

    model_config = SettingsConfigDict(env_prefix="REPOS_", extra="ignore")

    high: list[str] = Field(default_factory=list)
    medium: list[str] = Field(default_factory=list)
    low: list[str] = Field(default_factory=list)
    # False when the YAML gave a flat list (stored as the medium tier)
    grouped: bool = Field(default=True)

    @field_validator("high", "medium", "low")
    @classmethod
    def _check_repo_names(cls, repos: list[str]) -> list[str]:
        for repo in repos:
            owner, _, name = repo.partition("/")
            if not owner or not name:
                raise ValueError(f"invalid repo format {repo!r}: expected owner/repo")
        return repos

    def tiers(self) -> dict[str, list[str]]:
        """Repos per priority tier, in tier order."""
        return {"high": self.high, "medium": self.medium, "low": self.low}

    def all(self) -> list[str]:
        """Every tracked repo, high tier first."""
        return [*self.high, *self.medium, *self.low]


class PollIntervalsConfig(BaseSettings):
    """Base poll interval per priority tier, in seconds."""

    model_config = SettingsConfigDict(env_prefix="POLL_INTERVAL_", extra="ignore")

    high: int = Field(default=120, ge=1, description="High priority interval (2 minutes)")
    medium: int = Field(default=900, ge=1, description="Medium priority interval (15 minutes)")
    low: int = Field(default=7200, ge=1, description="Low priority interval (2 hours)")

    def for_priority(self, priority: str) -> int:
        return int(getattr(self, priority))


class SchedulerConfig(BaseSettings):
    """Scheduling mode and cadences."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    mode: str = Field(
        default="auto",
        description="auto (probe notifications), notifications, priority or flat",
    )
    full_refresh_interval_minutes: int = Field(
        default=30, ge=1, description="Full sweep interval (safety net or flat mode)"
    )
    tick_seconds: int = Field(default=30, ge=1, description="Priority scheduler tick")
    notification_interval_seconds: int = Field(
        default=60, ge=1, description="Notification poll interval until GitHub suggests one"
    )

    @field_validator("mode")
    @classmethod
    def _check_mode(cls, mode: str) -> str:
        mode = mode.strip().lower()
        if mode not in ("auto", "notifications", "priority", "flat"):
            raise ValueError(f"unknown scheduler mode {mode!r}")
        return mode


class DatabaseConfig(BaseSettings):
    """Local state database."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    path: Path = Field(default=CONFIG_DIR / "pr-monitor.db", description="SQLite database file")
    legacy_ignored_path: Path = Field(
        default=CONFIG_DIR / "ignored.json",
        description="Pre-database ignored list, imported once",
    )


class LoggingConfig(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(env_prefix="LOGGING_", extra="ignore")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: str | None = Field(default=None, description="Append logs to this file instead of stderr")


class AppConfig(BaseSettings):
    """Root application config from YAML + env."""

    model_config = SettingsConfigDict(extra="ignore")

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    repos: ReposConfig = Field(default_factory=ReposConfig)
    authors: list[str] = Field(default_factory=list)
    max_age_days: int = Field(default=3, ge=1, description="Ignore PRs created before this many days ago")
    poll_intervals: PollIntervalsConfig = Field(default_factory=PollIntervalsConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def github_token_resolved(self) -> str | None:
        """Resolve GitHub token from config, env or Docker secret file."""
        t = self.github.token
        if not _is_placeholder(t):
            return t
        return _read_secret("GITHUB_TOKEN", "GITHUB_TOKEN_FILE")

    @property
    def org_tokens_resolved(self) -> dict[str, str]:
        """Organization tokens with unresolved ${VAR} placeholders dropped."""
        return {org: tok for org, tok in self.github.org_tokens.items() if not _is_placeholder(tok)}

    def problems(self) -> list[str]:
        """Return reasons this config cannot run the monitor (empty when OK)."""
        found = []
        if not self.repos.all():
            found.append("no repositories configured")
        if not self.authors:
            found.append("no authors configured")
        if not self.github_token_resolved and not self.org_tokens_resolved:
            found.append("no GitHub tokens configured (github.token or github.org_tokens)")
        return found


def _substitute_env(value: Any) -> Any:
    """Replace ${VAR} and $VAR in strings with os.environ."""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            key = value[2:-1].strip()
            return _current_env.get(key, value)
        # Simple $VAR
        if value.startswith("$") and not value.startswith("${"):
            key = value[1:].strip()
            return _current_env.get(key, value)
        return value
    if isinstance(value, dict):
        return {k: _substitute_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env(v) for v in value]
    return value


def _repos_from_raw(raw: Any) -> ReposConfig:
    """Accept a flat list of repos or a mapping of priority tiers."""
    if raw is None:
        return ReposConfig()
    if isinstance(raw, list):
        return ReposConfig(medium=raw, grouped=False)
    return ReposConfig(**raw)


def _expand_path(value: Any) -> Any:
    if isinstance(value, str):
        return Path(value).expanduser()
    return value


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load config from YAML file and environment.

    Secrets: GITHUB_TOKEN or GITHUB_TOKEN_FILE.
    """
    global _current_env
    import os

    _current_env = dict(os.environ)

    path = config_path or DEFAULT_CONFIG_PATH
    if not path.is_file():
        return AppConfig()

    raw = yaml.safe_load(path.read_text()) or {}
    raw = _substitute_env(raw)

    github = GitHubConfig(**(raw.get("github") or {}))
    repos = _repos_from_raw(raw.get("repos"))
    poll_intervals = PollIntervalsConfig(**(raw.get("poll_intervals") or {}))
    scheduler = SchedulerConfig(**(raw.get("scheduler") or {}))
    database_raw = {k: _expand_path(v) for k, v in (raw.get("database") or {}).items()}
    database = DatabaseConfig(**database_raw)
    logging = LoggingConfig(**(raw.get("logging") or {}))

    extra: dict[str, Any] = {}
    if raw.get("max_age_days"):
        extra["max_age_days"] = raw["max_age_days"]

    return AppConfig(
        github=github,
        repos=repos,
        authors=list(raw.get("authors") or []),
        poll_intervals=poll_intervals,
        scheduler=scheduler,
        database=database,
        logging=logging,
        **extra,
    )
