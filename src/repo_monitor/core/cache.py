"""
TTL Cache
=========

Thread-safe in-memory cache with per-entry expiration.

- ``get`` never returns an entry whose expiry has passed, swept or not;
  an expired entry found on read is dropped on the spot.
- A daemon thread sweeps expired entries every ``cleanup_interval`` seconds
  so keys nobody reads again do not accumulate.
- One cache instance holds one kind of value (``TTLCache[list[Repository]]``),
  so a key can never be read back as the wrong shape.

The lock only guards the dict; it is never held while a caller fetches data.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Final, Generic, TypeVar

logger = logging.getLogger("repo_monitor.core.cache")

V = TypeVar("V")

DEFAULT_TTL_SECONDS: Final[float] = 300.0
DEFAULT_CLEANUP_INTERVAL_SECONDS: Final[float] = 60.0


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the monotonic time at which it goes stale."""

    value: V
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache(Generic[V]):
    """Key/value store where every entry carries its own time-to-live."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        *,
        time_fn: Callable[[], float] = time.monotonic,
        start_sweeper: bool = True,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be > 0")
        if cleanup_interval <= 0:
            raise ValueError("cleanup_interval must be > 0")
        self._default_ttl = float(default_ttl)
        self._cleanup_interval = float(cleanup_interval)
        self._time_fn = time_fn
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None
        if start_sweeper:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="ttl-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def sweeping(self) -> bool:
        """True while the background sweep thread is alive."""
        return self._sweeper is not None and self._sweeper.is_alive()

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def set(self, key: str, value: V) -> None:
        """Store ``value`` under ``key`` with the default TTL."""
        self.set_with_ttl(key, value, self._default_ttl)

    def set_with_ttl(self, key: str, value: V, ttl: float) -> None:
        """Store ``value`` under ``key``, replacing any entry and its TTL."""
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        expires_at = self._time_fn() + float(ttl)
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def get(self, key: str) -> tuple[V | None, bool]:
        """Return ``(value, True)`` for a live entry, ``(None, False)`` otherwise."""
        now = self._time_fn()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if entry.is_expired(now):
                del self._entries[key]
                return None, False
            return entry.value, True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[str]:
        """Keys of entries that are still live."""
        now = self._time_fn()
        with self._lock:
            return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        now = self._time_fn()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            self.sweep()

    def stop(self) -> None:
        """Stop the background sweep. ``get``/``set`` keep working afterwards."""
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join(timeout=self._cleanup_interval + 1.0)
