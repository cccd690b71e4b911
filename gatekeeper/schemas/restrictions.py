"""Form-level access restriction configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RestrictionFlags(BaseModel):
    """Which restriction policies are enabled on a form.

    Flags accept the legacy ``"1"`` / ``"0"`` strings stored by older form
    editors. Declaration order here is irrelevant: policies always run
    password, denylist, allowlist, ticket.
    """

    password: bool = False
    denylist: bool = False
    allowlist: bool = False
    ticket: bool = False

    model_config = ConfigDict(extra="ignore", frozen=True)

    def any_enabled(self) -> bool:
        return self.password or self.denylist or self.allowlist or self.ticket


class FormRestrictionConfig(BaseModel):
    """Restriction data attached to one form.

    An enabled allowlist with an empty ``allowed_users_list`` admits nobody;
    an enabled denylist with an empty ``denied_users_list`` blocks nobody.
    """

    restrictions: RestrictionFlags = Field(default_factory=RestrictionFlags)
    validation_code: str = Field("", description="Shared password for the password policy")
    denied_users_list: str = Field("", description="Newline-separated identifiers to reject")
    allowed_users_list: str = Field("", description="Newline-separated identifiers to admit")
    generated_codes_list: str = Field("", description="Newline-separated unused ticket codes")
    ticket_ignore_dashes: bool = Field(
        True,
        description="Compare ticket codes ignoring dashes and inner whitespace",
    )

    model_config = ConfigDict(extra="ignore")
