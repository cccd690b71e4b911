"""API key authentication for the /v1 gate routes.

The gate is called by the form backends, not by end users, so every /v1
route requires a shared key in ``X-API-Key``. Keys come from a
comma-separated env var (``APP_API_KEYS``) and are compared in constant
time.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from gatekeeper.core.config import settings
from gatekeeper.core.errors import AuthenticationAppError
from gatekeeper.core.logging import hash_subject

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 , key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def _matches_any(provided_key: str, valid_keys: set[str]) -> bool:
    provided = provided_key.encode()
    # No early exit, so timing does not reveal which key was close
    matched = False
    for key in valid_keys:
        matched |= hmac.compare_digest(provided, key.encode())
    return matched


def validate_api_key(provided_key: str) -> None:
    """Validate that provided API key matches configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is invalid, or authentication is
            required but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured", "auth_required": True},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if not provided_key or not _matches_any(provided_key, valid_keys):
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": hash_subject(provided_key),
                "auth_required": True,
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Usage:
        @router.post("/gate/...", dependencies=[Depends(verify_api_key)])

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"auth_required": True, "api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"api_key_hash": hash_subject(x_api_key)})
