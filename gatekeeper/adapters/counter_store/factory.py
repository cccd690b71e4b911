"""Factory for the configured counter store backend."""

from __future__ import annotations

import logging

from gatekeeper.adapters.counter_store.base import AbstractCounterStore
from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore
from gatekeeper.core.config import StoreSettings, settings
from gatekeeper.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Build the counter store selected by ``STORE_BACKEND``.

    Raises:
        ConfigurationAppError: If the backend name is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.strip().lower()

    if backend == "memory":
        logger.info("counter_store.created", extra={"backend": "memory"})
        return InMemoryCounterStore()

    if backend == "redis":
        from gatekeeper.adapters.counter_store.redis_store import RedisCounterStore

        logger.info("counter_store.created", extra={"backend": "redis"})
        return RedisCounterStore.from_url(cfg.redis_url, timeout_seconds=cfg.timeout_seconds)

    raise ConfigurationAppError(
        code="unknown_store_backend",
        message=f"Unknown counter store backend: {cfg.backend}",
        details={"hint": "Set STORE_BACKEND to 'memory' or 'redis'"},
    )
