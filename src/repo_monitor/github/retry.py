"""
Retry with exponential backoff
==============================

``RetryExecutor.run`` wraps a zero-argument coroutine factory with bounded
retries. It knows nothing about what the operation does:

- retryable errors (HTTP 429/500/502/503/504 and GitHub rate-limit errors)
  are retried after ``initial_backoff * multiplier ** (n - 1)`` seconds,
  capped at ``max_backoff``; a secondary rate limit waits at least its
  ``Retry-After`` seconds;
- anything else is raised on first occurrence;
- when attempts run out the last error is re-raised as-is, so callers can
  still classify it;
- a cancellation event is checked before and during every backoff sleep.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Final, TypeVar

import httpx

from repo_monitor.core.cancellation import SleepFn, sleep_unless_cancelled
from repo_monitor.errors import (
    GitHubError,
    GitHubRateLimitError,
    GitHubSecondaryRateLimitError,
    OperationCancelledError,
)

logger = logging.getLogger("repo_monitor.github.retry")

T = TypeVar("T")

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    Attributes:
        max_attempts: Total tries, one initial call plus retries
        initial_backoff: Seconds to wait before the first retry
        max_backoff: Upper bound for any single wait
        multiplier: Growth factor applied after every wait (>= 1)
    """

    max_attempts: int = 4
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_backoff < 0:
            raise ValueError("initial_backoff must be >= 0")
        if self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff must be >= initial_backoff")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def backoff_for(self, retry_number: int) -> float:
        """Wait before the ``retry_number``-th retry (1-based)."""
        if retry_number < 1:
            raise ValueError("retry_number is 1-based")
        return min(self.initial_backoff * (self.multiplier ** (retry_number - 1)), self.max_backoff)


def is_retryable_error(error: BaseException) -> bool:
    """Return True for transient failures worth another attempt."""
    if isinstance(error, GitHubRateLimitError):
        return True
    if isinstance(error, GitHubError):
        return error.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return False


def _delay_for(error: BaseException, backoff: float) -> float:
    """Never retry sooner than a secondary rate limit's Retry-After asks."""
    if isinstance(error, GitHubSecondaryRateLimitError) and error.retry_after is not None:
        return max(backoff, error.retry_after)
    return backoff


class RetryExecutor:
    """Applies a ``RetryPolicy`` to arbitrary async operations."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        classifier: Callable[[BaseException], bool] = is_retryable_error,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._classifier = classifier
        self._sleep = sleep

    async def run(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        cancel_event: asyncio.Event | None = None,
    ) -> T:
        """Call ``fn`` until it succeeds, fails fatally, or attempts run out.

        Args:
            operation: Name used in log records and cancellation errors
            fn: Factory returning a fresh awaitable per attempt
            cancel_event: Optional event that aborts the retry loop

        Returns:
            The result of the first successful call

        Raises:
            OperationCancelledError: If ``cancel_event`` fires before or during a backoff
            Exception: The non-retryable error, or the last retryable one
        """
        policy = self.policy
        backoff = policy.initial_backoff
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await fn()
            except Exception as exc:
                exc_seen = exc
                if not self._classifier(exc):
                    logger.debug("%s failed with non-retryable error: %s", operation, exc)
                    raise
                if attempt >= policy.max_attempts:
                    logger.error(
                        "%s failed after %d attempts: %s", operation, attempt, exc,
                    )
                    raise
                logger.warning(
                    "%s failed with retryable error (attempt %d/%d): %s",
                    operation, attempt, policy.max_attempts, exc,
                )
            else:
                if attempt > 1:
                    logger.info("%s succeeded on attempt %d", operation, attempt)
                return result

            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError(operation, attempt)

            delay = _delay_for(exc_seen, backoff)
            logger.info("Retrying %s in %.2fs", operation, delay)
            if await sleep_unless_cancelled(delay, cancel_event, sleep=self._sleep):
                raise OperationCancelledError(operation, attempt)

            backoff = min(backoff * policy.multiplier, policy.max_backoff)
