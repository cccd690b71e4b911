"""SettingsProvider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from gatekeeper.schemas.rate_limit import RateLimitSettings


class SettingsProvider(ABC):
    """Supplies the current rate-limit settings snapshot.

    The gatekeeper reads snapshots and never mutates or caches them; caching
    is the provider's (or its caller's) business.
    """

    @abstractmethod
    def get_rate_limit_settings(self) -> RateLimitSettings:
        raise NotImplementedError
