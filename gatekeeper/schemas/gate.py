"""Pydantic schemas for the gate HTTP endpoints."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field

from gatekeeper.schemas.restrictions import FormRestrictionConfig


class ChallengeResponse(BaseModel):
    """A math challenge to render in the form. The answer is never included."""

    label: str = Field(..., description="Question shown to the user.")
    hash: str = Field(..., description="Signature to echo back in the hash field.")


class SubmissionCheckRequest(BaseModel):
    """One submission attempt, as seen by the form backend."""

    ip: str | None = Field(None, description="Client IP of the submitter.")
    email: str | None = Field(None, description="Email typed in the form.")
    identifier: str | None = Field(
        None, description="National identifier typed in the form (any formatting)."
    )
    user_id: int | None = Field(None, description="Authenticated user id; 0/None for anonymous.")
    form_id: int = Field(0, description="Form being submitted.")
    form_config: FormRestrictionConfig | None = Field(
        None, description="Restriction configuration of the form; omit when it has none."
    )
    ticket_code: str | None = Field(None, description="Ticket typed by the user.")
    password: str | None = Field(None, description="Password typed by the user.")
    security_fields: Dict[str, Any] = Field(
        default_factory=dict,
        description="Raw form fields carrying the honeypot, challenge answer and hash.",
    )
    require_challenge: bool = Field(True, description="Validate the math challenge and honeypot.")


class GateDecisionResponse(BaseModel):
    """Outcome of a gate check."""

    allowed: bool
    stage: str = Field("", description="challenge, rate_limit or restriction when denied.")
    reason: str = Field("", description="Machine-readable denial reason.")
    message: str = Field("", description="User-facing message.")
    wait_seconds: int = Field(0, description="Seconds before a retry can succeed.")
    scope: str = ""
    is_ticket: bool = Field(
        False, description="A ticket passed; call the consume endpoint after saving."
    )
    ticket_code: str = Field("", description="Normalized ticket to consume.")
    degraded: bool = Field(False, description="A counter write failed while deciding.")


class VerificationCheckRequest(BaseModel):
    ip: str | None = None


class LimitDecisionResponse(BaseModel):
    """Outcome of a single rate-limit check."""

    allowed: bool
    reason: str = ""
    message: str = ""
    wait_seconds: int = 0
    scope: str = ""
    remaining: int | None = None
    degraded: bool = False


class UserActionCheckRequest(BaseModel):
    max_per_hour: int = Field(5, ge=1)
    max_per_day: int = Field(20, ge=1)


class TicketConsumeRequest(BaseModel):
    code: str = Field(..., min_length=1, description="Ticket code to consume.")


class TicketConsumeResponse(BaseModel):
    consumed: bool = Field(..., description="False when the ticket was unknown or already used.")


class TicketSeedRequest(BaseModel):
    codes: list[str] = Field(..., description="Ticket codes to add to the form's pool.")


class TicketPoolResponse(BaseModel):
    added: int = 0
    remaining: int = Field(..., description="Unused tickets left for the form.")


class SubmissionRecordRequest(BaseModel):
    """A submission the form backend has just saved."""

    email: str | None = Field(None, description="Email of the saved submission.")
    identifier: str | None = Field(None, description="Identifier of the saved submission.")
    form_id: int = Field(0, ge=0, description="Form the submission belongs to.")
    ticket_code: str | None = Field(
        None, description="Ticket from an is_ticket decision; consumed exactly once."
    )


class SubmissionRecordResponse(BaseModel):
    recorded: bool = Field(..., description="The submission counts toward email/identifier limits.")
    ticket_consumed: bool | None = Field(
        None, description="False when the ticket was already used; null when none was given."
    )
