"""Concrete SettingsProvider implementations."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from gatekeeper.adapters.settings.base import SettingsProvider
from gatekeeper.core.errors import ConfigurationAppError
from gatekeeper.schemas.rate_limit import RateLimitSettings

logger = logging.getLogger(__name__)


def _describe_errors(exc: ValidationError) -> list[str]:
    return [".".join(str(p) for p in err["loc"]) + ": " + err["msg"] for err in exc.errors()]


class StaticSettingsProvider(SettingsProvider):
    """Serves a fixed snapshot (defaults when none is given)."""

    def __init__(self, snapshot: RateLimitSettings | None = None) -> None:
        self._snapshot = snapshot if snapshot is not None else RateLimitSettings.defaults()

    def get_rate_limit_settings(self) -> RateLimitSettings:
        return self._snapshot


class JsonFileSettingsProvider(SettingsProvider):
    """Reads the snapshot from a JSON document on every call.

    A missing file yields an empty snapshot: every scope is then unconfigured
    and therefore disabled. A file that exists but does not validate is an
    operator error and raises ``ConfigurationAppError``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def get_rate_limit_settings(self) -> RateLimitSettings:
        if not self._path.is_file():
            logger.warning(
                "settings.missing",
                extra={"path": str(self._path), "effect": "all_scopes_disabled"},
            )
            return RateLimitSettings()

        try:
            document = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationAppError(
                code="settings_unreadable",
                message="Rate-limit settings document cannot be read",
                details={"path": str(self._path), "context": {"error": str(exc)}},
            ) from exc

        if not isinstance(document, dict):
            raise ConfigurationAppError(
                code="settings_invalid",
                message="Rate-limit settings document must be a JSON object",
                details={"path": str(self._path)},
            )

        try:
            return RateLimitSettings.from_document(document)
        except ValidationError as exc:
            raise ConfigurationAppError(
                code="settings_invalid",
                message="Rate-limit settings document failed validation",
                details={"path": str(self._path), "context": {"errors": _describe_errors(exc)}},
            ) from exc
