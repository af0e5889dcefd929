"""GitHub REST access: rate budget, retries, adapter and caching decorator."""

from repo_monitor.github.cached_client import CachedGitHubAdapter
from repo_monitor.github.client import GitHubAdapter
from repo_monitor.github.protocol import RepoHostClient
from repo_monitor.github.rate_limit import RateBudget
from repo_monitor.github.retry import RetryExecutor, RetryPolicy

__all__ = [
    "CachedGitHubAdapter",
    "GitHubAdapter",
    "RepoHostClient",
    "RateBudget",
    "RetryExecutor",
    "RetryPolicy",
]
