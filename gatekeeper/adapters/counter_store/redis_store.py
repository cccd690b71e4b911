"""Redis-backed counter store.

Counters are plain Redis integers. ``increment`` runs ``SET key 0 EX ttl NX``
followed by ``INCR key`` inside one MULTI/EXEC transaction, so the TTL is
applied only when the key is created and concurrent increments from other
workers are never lost.

Failure policy: reads degrade to "not found" (fail-open), writes raise
``StoreUnavailableError`` and leave the decision to the caller.
"""

from __future__ import annotations

import logging

import redis

from gatekeeper.adapters.counter_store.base import AbstractCounterStore
from gatekeeper.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store shared by every worker through Redis."""

    def __init__(self, client: "redis.Redis") -> None:
        self._client = client

    @property
    def client(self) -> "redis.Redis":
        """Underlying client, shared with the Redis ticket pool."""
        return self._client

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float = 0.35) -> "RedisCounterStore":
        """Build a store from a Redis URL.

        The connection is lazy; nothing hits the network until the first
        command. Socket timeouts keep a slow Redis from stalling requests.
        """
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client)

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.warning(
            "counter_store.unavailable",
            extra={"backend": "redis", "operation": operation, "error_type": type(exc).__name__},
        )
        return StoreUnavailableError(
            code="counter_store_unavailable",
            message="Counter store is unavailable",
            details={"backend": "redis", "operation": operation},
        )

    def get(self, key: str) -> tuple[int, bool]:
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            self._unavailable("get", exc)
            return 0, False
        if raw is None:
            return 0, False
        try:
            return int(raw), True
        except (TypeError, ValueError):
            logger.warning("counter_store.corrupt_value", extra={"backend": "redis"})
            return 0, False

    def increment(self, key: str, ttl_seconds: int) -> int:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, 0, ex=ttl_seconds, nx=True)
            pipe.incr(key, 1)
            _, count = pipe.execute()
        except redis.RedisError as exc:
            raise self._unavailable("increment", exc) from exc
        return int(count)

    def set_with_ttl(self, key: str, value: int, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        try:
            self._client.set(key, int(value), ex=ttl_seconds)
        except redis.RedisError as exc:
            raise self._unavailable("set", exc) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise self._unavailable("delete", exc) from exc

    def ttl(self, key: str) -> int | None:
        try:
            remaining = self._client.ttl(key)
        except redis.RedisError as exc:
            self._unavailable("ttl", exc)
            return None
        # -2: key absent, -1: key without expiry (never written by this store)
        if remaining is None or remaining < 0:
            return None
        return int(remaining)
