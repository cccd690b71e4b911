"""Global exception handlers for consistent error responses.

Denied submissions are not errors (routes return them as 403/429 bodies).
These handlers cover infrastructure and input faults:

- ValidationAppError -> 400
- AuthenticationAppError -> 403
- ConfigurationAppError, StoreUnavailableError -> 503
- any other AppError -> 500
- unexpected Exception -> generic 500

All error bodies include the request id for tracing.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gatekeeper.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    StoreUnavailableError,
    ValidationAppError,
)
from gatekeeper.core.logging import get_request_id

logger = logging.getLogger(__name__)


def status_for(exc: AppError) -> int:
    """HTTP status code for a domain error."""
    if isinstance(exc, ValidationAppError):
        return 400
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, (ConfigurationAppError, StoreUnavailableError)):
        return 503
    return 500


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"error": {code, message, request_id, details?}}``."""
    status_code = status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors; no implementation details leak out."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers; specific ones before the general fallback."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
