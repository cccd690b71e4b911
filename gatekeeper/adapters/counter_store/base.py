"""Counter store interface and key model.

The limiter depends on this abstraction (not the concrete implementation) so
the storage backend can be swapped (in-memory, Redis) without touching the
decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class CounterScope(str, Enum):
    """Counter families. Each family has its own key space."""

    IP = "ip"
    EMAIL = "email"
    IDENTIFIER = "identifier"
    USER_ACTION = "user_action"
    GLOBAL = "global"
    VERIFICATION = "verification"


class Window(Enum):
    """Fixed counting windows; the value is the window length in seconds."""

    MINUTE = 60
    HOUR = 3600
    DAY = 86400
    WEEK = 7 * 86400
    MONTH = 30 * 86400
    YEAR = 365 * 86400

    @property
    def seconds(self) -> int:
        return self.value


@dataclass(frozen=True)
class CounterKey:
    """Address of a single windowed counter.

    Attributes:
        scope: Counter family.
        subject: Already-normalized subject (IP, lowercase email, stripped
            identifier, ``"<user_id>:<action>"``, or ``"*"`` for global).
        window: Window whose length is the counter's TTL.
    """

    scope: CounterScope
    subject: str
    window: Window

    def render(self, prefix: str = "gk") -> str:
        return f"{prefix}:{self.scope.value}:{self.subject}:{self.window.name.lower()}"


def marker_key(scope: CounterScope, subject: str, kind: str, prefix: str = "gk") -> str:
    """Key of a non-windowed marker (cooldown timestamp, block expiry...)."""
    return f"{prefix}:{scope.value}:{subject}:{kind}"


class AbstractCounterStore(ABC):
    """Key/value counter service with TTL semantics.

    Implementations must make ``increment`` a single atomic read-modify-write
    per key: concurrent increments of one key must all be reflected.
    """

    @abstractmethod
    def get(self, key: str) -> tuple[int, bool]:
        """Read a value.

        Returns:
            ``(value, found)``. An unreachable backend reads as ``(0, False)``.
        """
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str, ttl_seconds: int) -> int:
        """Add 1 to a counter and return the new value.

        An absent key is created with value 1 and ``ttl_seconds`` to live;
        an existing key keeps its remaining TTL.

        Raises:
            StoreUnavailableError: If the backend cannot be written.
        """
        raise NotImplementedError

    @abstractmethod
    def set_with_ttl(self, key: str, value: int, ttl_seconds: int) -> None:
        """Overwrite a value and its TTL.

        Raises:
            StoreUnavailableError: If the backend cannot be written.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""
        raise NotImplementedError

    @abstractmethod
    def ttl(self, key: str) -> int | None:
        """Remaining seconds to live, or None when the key is absent."""
        raise NotImplementedError
