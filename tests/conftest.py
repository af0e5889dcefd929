"""
Pytest Configuration and Fixtures
==================================

Shared fixtures for all test modules. HTTP is served by
``httpx.MockTransport``; sleeps and clocks are fakes so timing is asserted
exactly without waiting.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterator

import httpx
import pytest

from fakes import API, FakeClock, FakeSleep, Handler
from repo_monitor.config import reset_config
from repo_monitor.github.client import GitHubAdapter
from repo_monitor.github.rate_limit import RateBudget
from repo_monitor.github.retry import RetryExecutor, RetryPolicy


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> Iterator[None]:
    """Keep real tokens and config files out of every test."""
    for var in (
        "GITHUB_TOKEN",
        "GITHUB_API_BASE_URL",
        "LOG_LEVEL",
        "RATE_LIMIT_THRESHOLD",
        "RETRY_MAX_ATTEMPTS",
        "CACHE_TTL_SECONDS",
        "CONFIG_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_adapter(fake_sleep: FakeSleep, fake_clock: FakeClock):
    """Build a ``GitHubAdapter`` whose HTTP calls go to ``handler``."""
    def factory(
        handler: Handler,
        *,
        max_attempts: int = 4,
        threshold: int = 10,
        cancel_event: asyncio.Event | None = None,
    ) -> GitHubAdapter:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GitHubAdapter(
            "ghp_testtoken1234",
            base_url=API,
            rate_budget=RateBudget(threshold, clock=fake_clock, sleep=fake_sleep),
            retry=RetryExecutor(RetryPolicy(max_attempts=max_attempts), sleep=fake_sleep),
            http_client=http_client,
            cancel_event=cancel_event,
        )

    return factory

