"""
Configuration
=============

Settings come from the environment and from ``.env`` files: ``.env`` in the
working directory wins over ``.env`` in the config directory
(``~/.repo-monitor`` unless ``CONFIG_DIR`` points elsewhere). Branch pairs
used for drift checks come from ``repos.json`` in the config directory.

Usage:
    from repo_monitor.config import get_config, load_repos_config

    cfg = get_config()
    repos = load_repos_config(cfg.repos_config_path)
    pair = repos.branch_config_for("octo/api")

repos.json:
    {
      "default": {"prod_branch": "main", "dev_branch": "develop"},
      "repositories": {
        "octo/api": {"prod_branch": "production", "dev_branch": "staging"}
      }
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Final

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from repo_monitor.errors import ConfigError

logger = logging.getLogger("repo_monitor.config")

DEFAULT_CONFIG_DIR: Final[Path] = Path.home() / ".repo-monitor"
REPOS_FILE_NAME: Final[str] = "repos.json"

DEFAULT_PROD_BRANCH: Final[str] = "main"
DEFAULT_DEV_BRANCH: Final[str] = "develop"

LOG_LEVELS: Final[dict[str, int]] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

SECRET_FIELDS: Final[frozenset[str]] = frozenset({"github_token"})


# ---------------------------------------------------------------------------
# Process settings
# ---------------------------------------------------------------------------

class MonitorConfig(BaseSettings):
    """
    Runtime settings for the monitor.

    Field names map to upper-case environment variables
    (``github_token`` -> ``GITHUB_TOKEN``).
    """

    model_config = SettingsConfigDict(
        # later files win: the working directory overrides the config dir
        env_file=(str(DEFAULT_CONFIG_DIR / ".env"), ".env"),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # GitHub
    # ------------------------------------------------------------------
    github_token: str = Field(
        default="",
        description="GitHub Personal Access Token (repo, workflow scopes)",
    )
    github_api_base_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API root, override for GitHub Enterprise",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Per-request timeout",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(
        default="info",
        description="debug, info, warning or error",
    )

    # ------------------------------------------------------------------
    # Rate limiting and retries
    # ------------------------------------------------------------------
    rate_limit_threshold: int = Field(
        default=10,
        ge=0,
        le=5000,
        description="Remaining-call count at or below which requests wait for reset",
    )
    retry_max_attempts: int = Field(
        default=4,
        ge=1,
        le=10,
        description="Total attempts per call (1 initial + retries)",
    )
    retry_initial_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Delay before the first retry",
    )
    retry_max_backoff_seconds: float = Field(
        default=30.0,
        ge=0,
        le=600,
        description="Upper bound for any single retry delay",
    )
    retry_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Backoff growth factor",
    )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------
    cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        le=86_400,
        description="Lifetime of cached repository and pull request listings",
    )
    cache_cleanup_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3_600,
        description="How often expired cache entries are swept",
    )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------
    config_dir: Path = Field(
        default=DEFAULT_CONFIG_DIR,
        description="Directory holding repos.json and an optional .env",
    )

    # =====================================================================
    # Validators
    # =====================================================================

    @field_validator("github_api_base_url")
    @classmethod
    def _validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"GITHUB_API_BASE_URL must start with http:// or https://, got: {v!r}"
            )
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got: {v!r}"
            )
        return level

    @field_validator("config_dir")
    @classmethod
    def _expand_config_dir(cls, v: Path) -> Path:
        return v.expanduser()

    # =====================================================================
    # Derived properties
    # =====================================================================

    @property
    def github_configured(self) -> bool:
        return bool(self.github_token.strip())

    @property
    def logging_level(self) -> int:
        return LOG_LEVELS[self.log_level]

    @property
    def repos_config_path(self) -> Path:
        return self.config_dir / REPOS_FILE_NAME

    def dump_json(self, *, mask_secrets: bool = True) -> str:
        """
        Dump configuration as JSON.

        Args:
            mask_secrets: If True, only the last 4 characters of the token are shown.
        """
        data = self.model_dump(mode="json")
        if mask_secrets:
            for key in SECRET_FIELDS:
                if key in data:
                    data[key] = _mask_secret(str(data[key] or ""))
        return json.dumps(data, indent=2, default=str)


def _mask_secret(value: str) -> str:
    """Mask a secret value, showing only last 4 characters."""
    if not value:
        return "(not set)"
    if len(value) <= 4:
        return "***"
    return "***" + value[-4:]


# ---------------------------------------------------------------------------
# Branch pairs (repos.json)
# ---------------------------------------------------------------------------

class BranchConfig(BaseModel):
    """Production (base) and development (head) branch of a repository."""

    prod_branch: str
    dev_branch: str

    @field_validator("prod_branch", "dev_branch")
    @classmethod
    def _validate_branch_name(cls, v: str) -> str:
        if not v:
            raise ValueError("branch name is empty")
        if any(ch in v for ch in " \t\n"):
            raise ValueError(f"branch name contains whitespace: {v!r}")
        return v


class ReposConfig(BaseModel):
    default: BranchConfig = Field(
        default_factory=lambda: BranchConfig(
            prod_branch=DEFAULT_PROD_BRANCH,
            dev_branch=DEFAULT_DEV_BRANCH,
        )
    )
    repositories: dict[str, BranchConfig] = Field(default_factory=dict)

    def branch_config_for(self, full_name: str) -> BranchConfig:
        """Branch pair for ``owner/name``, falling back to the default."""
        return self.repositories.get(full_name, self.default)


def load_repos_config(path: Path | None = None) -> ReposConfig:
    """
    Load branch pairs from ``repos.json``.

    A missing file yields the built-in ``main``/``develop`` default.

    Raises:
        ConfigError: If the file is unreadable, not JSON, or has an invalid branch name
    """
    if path is None:
        path = get_config().repos_config_path

    if not path.exists():
        logger.debug("%s not found, using default branches", path)
        return ReposConfig()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to read {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {path}: {e}") from e

    try:
        config = ReposConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid branch configuration in {path}: {e}") from e

    logger.info(
        "Loaded %s: default %s/%s, %d repository overrides",
        path,
        config.default.prod_branch,
        config.default.dev_branch,
        len(config.repositories),
    )
    return config


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------

_config_instance: MonitorConfig | None = None


def _load_config() -> MonitorConfig:
    """Build settings, re-reading ``.env`` from an overridden ``config_dir``."""
    config = MonitorConfig()
    env_path = config.config_dir / ".env"
    if config.config_dir == DEFAULT_CONFIG_DIR or not env_path.is_file():
        return config
    logger.debug("Loading settings from %s", env_path)
    return MonitorConfig(_env_file=(str(env_path), ".env"))


def get_config() -> MonitorConfig:
    """
    Get the global configuration singleton.

    Loaded once from the environment and .env files; later calls return
    the cached instance.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = _load_config()
    return _config_instance


def reset_config() -> None:
    """Reset the configuration singleton (useful for testing)."""
    global _config_instance
    _config_instance = None
