"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme, tag descriptions, and exempts the
health endpoint from auth in the generated schema.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {"name": "Gate", "description": "Submission, verification and per-user rate-limit checks."},
    {"name": "Challenge", "description": "Math challenge generation."},
    {"name": "Tickets", "description": "Single-use ticket consumption."},
    {"name": "Health", "description": "Liveness checks."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
