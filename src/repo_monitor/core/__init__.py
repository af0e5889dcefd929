"""Generic building blocks: TTL cache and cancellable sleeps."""

from repo_monitor.core.cache import TTLCache
from repo_monitor.core.cancellation import sleep_unless_cancelled

__all__ = [
    "TTLCache",
    "sleep_unless_cancelled",
]
