"""Cancellable sleeps used by the rate budget and the retry loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

SleepFn = Callable[[float], Awaitable[None]]


async def sleep_unless_cancelled(
    delay: float,
    cancel_event: asyncio.Event | None = None,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> bool:
    """Sleep for ``delay`` seconds or until ``cancel_event`` is set.

    Args:
        delay: Seconds to sleep
        cancel_event: Optional event that aborts the sleep when set
        sleep: Sleep coroutine (injected in tests)

    Returns:
        True if the sleep was cut short by the cancellation event
    """
    if cancel_event is None:
        await sleep(delay)
        return False
    if cancel_event.is_set():
        return True

    sleeper = asyncio.ensure_future(sleep(delay))
    watcher = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()
    return cancel_event.is_set()
