"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

This module only covers *process* configuration (store backend, logging,
challenge secret, auth). The rate-limit thresholds and lists are a separate
snapshot served by a SettingsProvider (see gatekeeper.adapters.settings).
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on /v1 routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Counter store and ticket pool backend configuration."""

    backend: str = Field(
        "memory",
        description="Counter store backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL when backend=redis",
    )
    key_prefix: str = Field(
        "gk",
        description="Namespace prepended to every counter and ticket key",
    )
    timeout_seconds: float = Field(
        0.35,
        description="Socket timeout for store calls; slow calls fail fast",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class ChallengeSettings(BaseSettings):
    """Math challenge and honeypot configuration."""

    secret_key: str = Field(
        "change-me",
        description="HMAC key used to sign challenge answers",
    )
    salt: str = Field(
        "gk_math_salt",
        description="Fixed salt appended to the answer before hashing",
    )
    honeypot_field: str = Field(
        "honeypot_trap",
        description="Form field that must stay empty (bots tend to fill it)",
    )
    answer_field: str = Field("captcha_answer", description="Form field carrying the answer")
    hash_field: str = Field("captcha_hash", description="Form field carrying the challenge hash")

    model_config = SettingsConfigDict(
        env_prefix="CHALLENGE_",
        case_sensitive=False,
    )


class GateSettings(BaseSettings):
    """Gatekeeper behavior configuration."""

    rate_limit_settings_file: str | None = Field(
        None,
        description=(
            "Path to a JSON rate-limit settings document. When unset, the "
            "documented defaults are served."
        ),
    )
    count_denied_attempts: bool = Field(
        True,
        description="Count denied attempts toward future windows (limit attempts, not successes)",
    )

    model_config = SettingsConfigDict(
        env_prefix="GATE_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    challenge: ChallengeSettings = Field(default_factory=ChallengeSettings)
    gate: GateSettings = Field(default_factory=GateSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
