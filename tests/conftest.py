"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and the env defaults the
settings object needs, before anything imports ``gatekeeper``.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("CHALLENGE_SECRET_KEY", "test-challenge-secret")

from unittest.mock import Mock

import pytest

from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore
from gatekeeper.adapters.history import InMemoryHistoricalCountStore
from gatekeeper.adapters.settings import StaticSettingsProvider
from gatekeeper.schemas.rate_limit import RateLimitSettings
from gatekeeper.services.rate_limiter import RateLimiter


@pytest.fixture
def clock() -> Mock:
    """Frozen time source; tests move it with ``clock.return_value = ...``."""
    return Mock(return_value=1_000_000.0)


@pytest.fixture
def store(clock: Mock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def history(clock: Mock) -> InMemoryHistoricalCountStore:
    return InMemoryHistoricalCountStore(clock=clock)


@pytest.fixture
def make_limiter(store, history, clock):
    """Build a RateLimiter over the shared store/history for a given snapshot."""

    def _make(snapshot: RateLimitSettings | None = None, **kwargs) -> RateLimiter:
        provider = StaticSettingsProvider(snapshot if snapshot is not None else RateLimitSettings())
        return RateLimiter(provider, store, history=history, clock=clock, **kwargs)

    return _make
