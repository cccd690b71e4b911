"""In-memory submission history, for tests and single-process deployments."""

from __future__ import annotations

import bisect
import threading
import time
from collections import defaultdict
from typing import Callable

from gatekeeper.adapters.history.base import HistoricalCountStore
from gatekeeper.utils.normalizers import normalize_email, normalize_identifier


class InMemoryHistoricalCountStore(HistoricalCountStore):
    """Keeps sorted submission timestamps per email and per identifier."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._by_email: dict[str, list[float]] = defaultdict(list)
        self._by_identifier: dict[str, list[float]] = defaultdict(list)

    def record(
        self,
        *,
        email: str | None = None,
        identifier: str | None = None,
        at: float | None = None,
    ) -> None:
        timestamp = self._clock() if at is None else at
        email_key = normalize_email(email)
        identifier_key = normalize_identifier(identifier)
        with self._lock:
            if email_key:
                bisect.insort(self._by_email[email_key], timestamp)
            if identifier_key:
                bisect.insort(self._by_identifier[identifier_key], timestamp)

    @staticmethod
    def _count_since(timestamps: list[float], since: float) -> int:
        return len(timestamps) - bisect.bisect_left(timestamps, since)

    def count_by_email_since(self, email: str, since: float) -> int:
        key = normalize_email(email)
        with self._lock:
            return self._count_since(self._by_email.get(key, []), since)

    def count_by_identifier_since(self, identifier: str, since: float) -> int:
        key = normalize_identifier(identifier)
        with self._lock:
            return self._count_since(self._by_identifier.get(key, []), since)
