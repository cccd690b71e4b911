"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Note that a denied submission is *not* an error: rate-limit, restriction and
challenge failures are returned as result values. Exceptions are reserved for
infrastructure and configuration faults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    http_status: int
    backend: str
    operation: str
    path: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class ConfigurationAppError(AppError):
    """Raised when a settings document exists but cannot be parsed."""


class StoreUnavailableError(AppError):
    """Raised when the counter store or ticket pool cannot be reached."""
