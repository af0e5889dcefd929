"""
GitHub rate budget
==================

Tracks the primary rate limit reported by GitHub in the
``X-RateLimit-Remaining`` / ``X-RateLimit-Reset`` headers and holds callers
back once the remaining quota drops to the configured threshold.

Every response updates the budget; every call waits on it first. The state
is read and written under one lock, but the wait itself sleeps outside the
lock so concurrent callers can keep reporting fresh headers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Final, Mapping

import httpx

from repo_monitor.core.cancellation import SleepFn, sleep_unless_cancelled
from repo_monitor.errors import OperationCancelledError

logger = logging.getLogger("repo_monitor.github.rate_limit")

# GitHub's documented hourly ceiling for authenticated requests
DEFAULT_REMAINING: Final[int] = 5000
DEFAULT_THRESHOLD: Final[int] = 10
MAX_WAIT_SECONDS: Final[float] = 60.0

REMAINING_HEADER: Final[str] = "X-RateLimit-Remaining"
RESET_HEADER: Final[str] = "X-RateLimit-Reset"


@dataclass(frozen=True)
class RateState:
    """Point-in-time copy of the budget.

    Attributes:
        remaining: Calls left in the current window (never negative)
        reset_at: UNIX epoch seconds when the window resets, None if unknown
        threshold: Remaining count at or below which calls are held back
    """

    remaining: int
    reset_at: float | None
    threshold: int

    @property
    def reset_at_datetime(self) -> datetime | None:
        if self.reset_at is None:
            return None
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


class RateBudget:
    """Shared rate-limit gate for every outbound GitHub call."""

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        *,
        initial_remaining: int = DEFAULT_REMAINING,
        clock: Callable[[], float] = time.time,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        self._threshold = threshold
        self._remaining = max(0, initial_remaining)
        self._reset_at: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def reset_at(self) -> float | None:
        with self._lock:
            return self._reset_at

    def snapshot(self) -> RateState:
        with self._lock:
            return RateState(
                remaining=self._remaining,
                reset_at=self._reset_at,
                threshold=self._threshold,
            )

    def wait_duration(self) -> float:
        """Seconds the next call would be held back (0 when under budget)."""
        state = self.snapshot()
        if state.remaining > state.threshold or state.reset_at is None:
            return 0.0
        duration = state.reset_at - self._clock()
        if duration <= 0:
            return 0.0
        return min(duration, MAX_WAIT_SECONDS)

    async def wait(self, cancel_event: asyncio.Event | None = None) -> bool:
        """Hold the caller back while the budget is at or below the threshold.

        The sleep is capped at ``MAX_WAIT_SECONDS``; callers then proceed even
        if the window has not reset, and the next response refreshes the state.

        Args:
            cancel_event: Optional event that aborts the wait when set

        Returns:
            True if the caller had to wait

        Raises:
            OperationCancelledError: If ``cancel_event`` fires during the wait
        """
        duration = self.wait_duration()
        if duration <= 0:
            return False

        logger.info(
            "Rate budget low (%d remaining, threshold %d). Waiting %.1fs for reset",
            self.remaining,
            self._threshold,
            duration,
        )
        cancelled = await sleep_unless_cancelled(duration, cancel_event, sleep=self._sleep)
        if cancelled:
            raise OperationCancelledError("rate limit wait")
        return True

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Overwrite the budget from rate-limit headers.

        A header that is absent or not an integer leaves its field untouched.
        """
        raw_remaining = headers.get(REMAINING_HEADER)
        raw_reset = headers.get(RESET_HEADER)
        if raw_remaining is None and raw_reset is None:
            return

        remaining: int | None = None
        if raw_remaining is not None:
            try:
                remaining = max(0, int(raw_remaining))
            except ValueError:
                logger.warning("Non-numeric %s header: %r", REMAINING_HEADER, raw_remaining)

        reset_at: float | None = None
        if raw_reset is not None:
            try:
                reset_at = float(int(raw_reset))
            except ValueError:
                logger.warning("Non-numeric %s header: %r", RESET_HEADER, raw_reset)

        with self._lock:
            if remaining is not None:
                self._remaining = remaining
            if reset_at is not None:
                self._reset_at = reset_at
            current_remaining = self._remaining
            current_reset = self._reset_at

        if current_remaining <= self._threshold:
            logger.warning(
                "Rate limit low: %d remaining, resets at %s",
                current_remaining,
                (
                    datetime.fromtimestamp(current_reset, tz=timezone.utc).isoformat()
                    if current_reset is not None
                    else "unknown"
                ),
            )

    def update_from_response(self, response: httpx.Response | None) -> None:
        if response is None:
            return
        self.update_from_headers(response.headers)
