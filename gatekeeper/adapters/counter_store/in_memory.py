"""In-memory TTL counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limits.
- Thread-safe: a single lock guards every read-modify-write.
- Expiry is lazy: an expired entry is dropped the next time it is touched,
  plus an opportunistic sweep on writes.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from gatekeeper.adapters.counter_store.base import AbstractCounterStore


@dataclass
class _Entry:
    value: int
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a dict and a lock.

    Important:
        This store is per-process. If the service runs with multiple workers
        (e.g. several Uvicorn/Gunicorn workers), each worker keeps its own
        counters; use the Redis store to share them.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 1024,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds.
            sweep_every: Run a full expiry sweep after this many writes.

        Raises:
            ValueError: If sweep_every is invalid.
        """
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")

        self._clock = clock
        self._sweep_every = sweep_every
        self._writes = 0
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for e in self._entries.values() if e.expires_at > now)

    def _live_entry_locked(self, key: str, now: float) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def _after_write_locked(self, now: float) -> None:
        self._writes += 1
        if self._writes % self._sweep_every:
            return
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]

    def get(self, key: str) -> tuple[int, bool]:
        with self._lock:
            entry = self._live_entry_locked(key, self._clock())
            if entry is None:
                return 0, False
            return entry.value, True

    def increment(self, key: str, ttl_seconds: int) -> int:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            now = self._clock()
            entry = self._live_entry_locked(key, now)
            if entry is None:
                entry = _Entry(value=0, expires_at=now + ttl_seconds)
                self._entries[key] = entry
            entry.value += 1
            self._after_write_locked(now)
            return entry.value

    def set_with_ttl(self, key: str, value: int, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            now = self._clock()
            self._entries[key] = _Entry(value=int(value), expires_at=now + ttl_seconds)
            self._after_write_locked(now)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ttl(self, key: str) -> int | None:
        with self._lock:
            now = self._clock()
            entry = self._live_entry_locked(key, now)
            if entry is None:
                return None
            return max(0, int(math.ceil(entry.expires_at - now)))

    def clear(self) -> None:
        """Drop every entry (used by tests and operator resets)."""
        with self._lock:
            self._entries.clear()
            self._writes = 0
