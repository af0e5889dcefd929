"""Builds the adapter stack from configuration.

One ``RateBudget`` and one ``RetryExecutor`` are shared by the direct
adapter and the caching decorator that wraps it. Use-cases that mutate or
need live data get ``Clients.direct``; listings that tolerate a few
minutes of staleness get ``Clients.cached``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from repo_monitor.config import MonitorConfig
from repo_monitor.github.cached_client import CachedGitHubAdapter
from repo_monitor.github.client import GitHubAdapter
from repo_monitor.github.rate_limit import RateBudget
from repo_monitor.github.retry import RetryExecutor, RetryPolicy


@dataclass
class Clients:
    direct: GitHubAdapter
    cached: CachedGitHubAdapter

    async def close(self) -> None:
        # closing the decorator closes the adapter it wraps
        await self.cached.close()


def build_clients(
    config: MonitorConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
    cancel_event: asyncio.Event | None = None,
) -> Clients:
    """
    Wire rate budget, retry policy, adapter and cache from ``config``.

    Raises:
        GitHubNotConfiguredError: If no GitHub token is configured
    """
    policy = RetryPolicy(
        max_attempts=config.retry_max_attempts,
        initial_backoff=config.retry_initial_backoff_seconds,
        max_backoff=max(config.retry_max_backoff_seconds, config.retry_initial_backoff_seconds),
        multiplier=config.retry_multiplier,
    )
    direct = GitHubAdapter(
        config.github_token,
        base_url=config.github_api_base_url,
        rate_budget=RateBudget(config.rate_limit_threshold),
        retry=RetryExecutor(policy),
        http_client=http_client,
        timeout=config.request_timeout_seconds,
        cancel_event=cancel_event,
    )
    cached = CachedGitHubAdapter(
        direct,
        ttl=config.cache_ttl_seconds,
        cleanup_interval=config.cache_cleanup_interval_seconds,
    )
    return Clients(direct=direct, cached=cached)


@asynccontextmanager
async def open_clients(
    config: MonitorConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
    cancel_event: asyncio.Event | None = None,
) -> AsyncIterator[Clients]:
    clients = build_clients(config, http_client=http_client, cancel_event=cancel_event)
    try:
        yield clients
    finally:
        await clients.close()
