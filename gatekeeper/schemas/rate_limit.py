"""Typed rate-limit settings snapshot.

A snapshot is what a SettingsProvider hands to the RateLimiter. It is
validated once, at the provider boundary, and then read without further
checks. Each scope is an optional section:

- section is ``None``: the scope is not configured and is treated as
  disabled (a misconfiguration never locks everybody out);
- section is present: omitted keys take the defaults declared below, and the
  section's own ``enabled`` flag decides whether the scope applies.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gatekeeper.utils.normalizers import split_lines


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class IPLimitSettings(_Section):
    enabled: bool = True
    max_per_hour: int = Field(5, ge=1)
    max_per_day: int = Field(20, ge=1)
    cooldown_seconds: int = Field(60, ge=0)
    apply_to: str = "all"
    message: str = "Limit reached. Please wait {time}."


class VerificationLimitSettings(_Section):
    """Limits for the public certificate verification endpoint."""

    enabled: bool = True
    max_per_hour: int = Field(10, ge=1)
    max_per_day: int = Field(30, ge=1)
    message: str = "Too many verification attempts. Please wait {time}."


class EmailLimitSettings(_Section):
    enabled: bool = True
    check_database: bool = True
    max_per_day: int = Field(3, ge=1)
    max_per_week: int = Field(10, ge=1)
    max_per_month: int = Field(30, ge=1)
    wait_hours: int = Field(24, ge=0)
    apply_to: str = "all"
    message: str = "You already have {count} certificates."


class IdentifierLimitSettings(_Section):
    """Limits keyed by a national-ID-like identifier.

    ``block_threshold`` denials within ``block_hours`` escalate into a block
    lasting ``block_duration`` hours.
    """

    enabled: bool = True
    check_database: bool = True
    max_per_month: int = Field(5, ge=1)
    max_per_year: int = Field(50, ge=1)
    block_threshold: int = Field(3, ge=1)
    block_hours: int = Field(1, ge=1)
    block_duration: int = Field(24, ge=1)
    apply_to: str = "all"
    message: str = "Identifier limit reached."


class GlobalLimitSettings(_Section):
    enabled: bool = False
    max_per_minute: int = Field(100, ge=1)
    max_per_hour: int = Field(1000, ge=1)
    message: str = "System unavailable. Please try again in {time}."


class SubjectListSettings(_Section):
    """A blacklist or whitelist.

    ``email_domains`` entries use the ``*@example.com`` form. Each field
    accepts either a list or a newline-separated string (the admin textarea
    format).
    """

    ips: tuple[str, ...] = ()
    emails: tuple[str, ...] = ()
    email_domains: tuple[str, ...] = ()
    identifiers: tuple[str, ...] = ()

    @field_validator("ips", "emails", "email_domains", "identifiers", mode="before")
    @classmethod
    def _coerce_lines(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(split_lines(value))
        return tuple(str(v).strip() for v in value if str(v).strip())

    def is_empty(self) -> bool:
        return not (self.ips or self.emails or self.email_domains or self.identifiers)


class AuditLoggingSettings(_Section):
    enabled: bool = False
    log_allowed: bool = False
    log_blocked: bool = False
    retention_days: int = Field(30, ge=1)
    max_logs: int = Field(10000, ge=100)


class UISettings(_Section):
    show_remaining: bool = True
    show_wait_time: bool = True
    countdown_timer: bool = True


class RateLimitSettings(BaseModel):
    """Full snapshot served by a SettingsProvider."""

    ip: IPLimitSettings | None = None
    verification: VerificationLimitSettings | None = None
    email: EmailLimitSettings | None = None
    identifier: IdentifierLimitSettings | None = None
    global_: GlobalLimitSettings | None = Field(default=None, alias="global")
    whitelist: SubjectListSettings = Field(default_factory=SubjectListSettings)
    blacklist: SubjectListSettings = Field(default_factory=SubjectListSettings)
    logging: AuditLoggingSettings = Field(default_factory=AuditLoggingSettings)
    ui: UISettings = Field(default_factory=UISettings)

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @field_validator("whitelist", "blacklist", mode="before")
    @classmethod
    def _legacy_identifier_key(cls, value: Any) -> Any:
        # Older documents call the identifier list "cpfs"
        if isinstance(value, dict) and "cpfs" in value and "identifiers" not in value:
            value = {**value, "identifiers": value["cpfs"]}
        return value

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "RateLimitSettings":
        """Validate a raw settings document (accepts the legacy ``cpf`` key)."""
        data = dict(document)
        if "cpf" in data and "identifier" not in data:
            data["identifier"] = data.pop("cpf")
        return cls.model_validate(data)

    @classmethod
    def defaults(cls) -> "RateLimitSettings":
        """Snapshot with every scope section present at its default values."""
        return cls(
            ip=IPLimitSettings(),
            verification=VerificationLimitSettings(),
            email=EmailLimitSettings(),
            identifier=IdentifierLimitSettings(enabled=False),
            global_=GlobalLimitSettings(),
        )
