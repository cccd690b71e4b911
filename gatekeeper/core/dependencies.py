"""Process-wide collaborators for the HTTP layer.

Routes depend on these provider functions only. Instances are cached
in-module so counters and ticket pools survive across requests; when the
relevant configuration changes (primarily in tests) they are rebuilt.
"""

from __future__ import annotations

import logging

from gatekeeper.adapters.audit import LoggingAuditSink
from gatekeeper.adapters.counter_store.base import AbstractCounterStore
from gatekeeper.adapters.counter_store.factory import create_counter_store
from gatekeeper.adapters.history import HistoricalCountStore, InMemoryHistoricalCountStore
from gatekeeper.adapters.settings import (
    JsonFileSettingsProvider,
    SettingsProvider,
    StaticSettingsProvider,
)
from gatekeeper.adapters.tickets import InMemoryTicketPool, TicketConsumer
from gatekeeper.core.config import settings
from gatekeeper.services.access_restriction import AccessRestrictionChecker
from gatekeeper.services.challenge_service import ChallengeService
from gatekeeper.services.gatekeeper import SubmissionGatekeeper
from gatekeeper.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


_store: AbstractCounterStore | None = None
_tickets: TicketConsumer | None = None
_history: HistoricalCountStore | None = None
_store_config: tuple[str, str, str] | None = None


def _current_store_config() -> tuple[str, str, str]:
    return (settings.store.backend, settings.store.redis_url, settings.store.key_prefix)


def _ensure_backends() -> None:
    global _store, _tickets, _history, _store_config

    config = _current_store_config()
    if _store is not None and _store_config == config:
        return

    _store = create_counter_store(settings.store)
    if settings.store.backend.strip().lower() == "redis":
        from gatekeeper.adapters.counter_store.redis_store import RedisCounterStore
        from gatekeeper.adapters.tickets.redis_pool import RedisTicketPool

        assert isinstance(_store, RedisCounterStore)
        _tickets = RedisTicketPool(_store.client, prefix=settings.store.key_prefix)
    else:
        _tickets = InMemoryTicketPool()
    _history = InMemoryHistoricalCountStore()
    _store_config = config


def get_counter_store() -> AbstractCounterStore:
    """Return the shared counter store for the configured backend."""
    _ensure_backends()
    assert _store is not None
    return _store


def get_ticket_pool() -> TicketConsumer:
    """Return the shared ticket pool (Redis sets or an in-process pool)."""
    _ensure_backends()
    assert _tickets is not None
    return _tickets


def get_history_store() -> HistoricalCountStore:
    _ensure_backends()
    assert _history is not None
    return _history


def get_settings_provider() -> SettingsProvider:
    """JSON document when ``GATE_RATE_LIMIT_SETTINGS_FILE`` is set, defaults otherwise.

    The file provider re-reads the document on every call, so edits take
    effect without a restart.
    """
    path = settings.gate.rate_limit_settings_file
    if path:
        return JsonFileSettingsProvider(path)
    return StaticSettingsProvider()


def get_rate_limiter() -> RateLimiter:
    return RateLimiter(
        get_settings_provider(),
        get_counter_store(),
        history=get_history_store(),
        key_prefix=settings.store.key_prefix,
        count_denied_attempts=settings.gate.count_denied_attempts,
    )


def get_challenge_service() -> ChallengeService:
    return ChallengeService(settings.challenge)


def get_gatekeeper() -> SubmissionGatekeeper:
    """Wire the full submission gate from the shared collaborators."""
    return SubmissionGatekeeper(
        challenge=get_challenge_service(),
        limiter=get_rate_limiter(),
        restrictions=AccessRestrictionChecker(),
        settings_provider=get_settings_provider(),
        tickets=get_ticket_pool(),
        history=get_history_store(),
        audit_sink=LoggingAuditSink(),
    )


def reset_dependencies() -> None:
    """Drop cached backends so the next call rebuilds them (tests)."""
    global _store, _tickets, _history, _store_config
    _store = None
    _tickets = None
    _history = None
    _store_config = None
