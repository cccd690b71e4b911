"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build a fresh app per case.
"""

from __future__ import annotations

from fastapi import FastAPI

from gatekeeper.api.routes import challenge_router, gate_router, health_router, tickets_router
from gatekeeper.core.config import settings
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import request_id_middleware
from gatekeeper.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Submission Gatekeeper",
        description=(
            "Anti-abuse gate for public form submissions: math challenge and "
            "honeypot, windowed rate limits per IP, email, identifier and user, "
            "blacklist/whitelist, and per-form password, allow/deny list and "
            "single-use ticket restrictions. Requires X-API-Key."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(challenge_router, prefix="/v1")
    app.include_router(gate_router, prefix="/v1")
    app.include_router(tickets_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
