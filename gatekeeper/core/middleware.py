"""Request ID propagation middleware.

Every request/response pair carries a correlation id so gate decisions,
audit events and store warnings for one submission can be joined in the
logs. The id is read from the configured header (``LOG_REQUEST_ID_HEADER``)
or generated, kept in contextvars for the request's lifetime, and echoed
back with the request duration.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from gatekeeper.core.config import settings
from gatekeeper.core.logging import clear_request_id, set_request_id

MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request, header_name: str) -> str:
    value = (request.headers.get(header_name) or "").strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH:
        return str(uuid.uuid4())
    return value


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a request id to the logging context and the response.

    Side Effects:
        - Sets request_id in contextvars (see ``get_request_id()``)
        - Clears it once the response is produced
        - Adds the request id and ``X-Request-Duration-ms`` response headers
    """
    header_name = settings.log.request_id_header
    request_id = _incoming_request_id(request, header_name)
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
