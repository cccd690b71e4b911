"""Gate check endpoints.

Denials are ordinary outcomes, not errors: a time-bound rate-limit denial
answers 429 with ``Retry-After``, any other denial (blacklist, challenge,
restriction) 403, both with the decision body so the caller can show
``message`` and a countdown.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import JSONResponse

from gatekeeper.core.auth import verify_api_key
from gatekeeper.core.dependencies import get_gatekeeper, get_rate_limiter
from gatekeeper.schemas.gate import (
    GateDecisionResponse,
    LimitDecisionResponse,
    SubmissionCheckRequest,
    SubmissionRecordRequest,
    SubmissionRecordResponse,
    UserActionCheckRequest,
    VerificationCheckRequest,
)
from gatekeeper.services.gatekeeper import GateDecision, SubmissionAttempt, SubmissionGatekeeper
from gatekeeper.services.rate_limiter import LimitDecision, RateLimiter

router = APIRouter(prefix="/gate", tags=["Gate"], dependencies=[Depends(verify_api_key)])


def _retry_headers(wait_seconds: int) -> dict[str, str]:
    return {"Retry-After": str(max(1, wait_seconds))}


def _gate_response(decision: GateDecision) -> JSONResponse:
    body = GateDecisionResponse(
        allowed=decision.allowed,
        stage=decision.stage,
        reason=decision.reason,
        message=decision.message,
        wait_seconds=decision.wait_seconds,
        scope=decision.scope,
        is_ticket=decision.is_ticket,
        ticket_code=decision.ticket_code,
        degraded=decision.degraded,
    ).model_dump()

    if decision.allowed:
        return JSONResponse(status_code=status.HTTP_200_OK, content=body)
    if decision.stage == "rate_limit" and decision.wait_seconds > 0:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=body,
            headers=_retry_headers(decision.wait_seconds),
        )
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=body)


def _limit_response(decision: LimitDecision) -> JSONResponse:
    body = LimitDecisionResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        message=decision.message,
        wait_seconds=decision.wait_seconds,
        scope=decision.scope,
        remaining=decision.remaining,
        degraded=decision.degraded,
    ).model_dump()

    if decision.allowed:
        return JSONResponse(status_code=status.HTTP_200_OK, content=body)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body,
        headers=_retry_headers(decision.wait_seconds),
    )


@router.post(
    "/submissions/check",
    response_model=GateDecisionResponse,
    responses={403: {"model": GateDecisionResponse}, 429: {"model": GateDecisionResponse}},
)
def check_submission(
    payload: SubmissionCheckRequest,
    gatekeeper: SubmissionGatekeeper = Depends(get_gatekeeper),
) -> JSONResponse:
    """Run challenge, rate limits and form restrictions for one submission.

    Once the submission is saved, report it through ``/submissions/record``;
    with ``is_ticket`` pass the ticket there (or consume it through
    ``/v1/tickets/{form_id}/consume``).
    """
    attempt = SubmissionAttempt(
        ip=payload.ip,
        email=payload.email,
        identifier=payload.identifier,
        user_id=payload.user_id,
        form_id=payload.form_id,
        form_config=payload.form_config,
        ticket_code=payload.ticket_code,
        password=payload.password,
        security_fields=payload.security_fields,
        require_challenge=payload.require_challenge,
    )
    return _gate_response(gatekeeper.evaluate(attempt))


@router.post("/submissions/record", response_model=SubmissionRecordResponse)
def record_submission(
    payload: SubmissionRecordRequest,
    gatekeeper: SubmissionGatekeeper = Depends(get_gatekeeper),
) -> SubmissionRecordResponse:
    """Report a saved submission.

    Feeds the email and identifier limits and, when ``ticket_code`` is
    given, consumes the ticket in the same call.
    """
    result = gatekeeper.record_submission(
        email=payload.email,
        identifier=payload.identifier,
        form_id=payload.form_id,
        ticket_code=payload.ticket_code,
    )
    return SubmissionRecordResponse(recorded=result.recorded, ticket_consumed=result.ticket_consumed)


@router.post(
    "/verification/check",
    response_model=LimitDecisionResponse,
    responses={429: {"model": LimitDecisionResponse}},
)
def check_verification(
    payload: VerificationCheckRequest,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> JSONResponse:
    """Count one certificate-verification lookup for the IP."""
    return _limit_response(limiter.check_verification_limit(payload.ip))


@router.post(
    "/users/{user_id}/actions/{action}/check",
    response_model=LimitDecisionResponse,
    responses={429: {"model": LimitDecisionResponse}},
)
def check_user_action(
    user_id: int = Path(..., ge=0),
    action: str = Path(..., min_length=1, max_length=64),
    payload: UserActionCheckRequest | None = None,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> JSONResponse:
    """Count one named action for an authenticated user (0 is never limited)."""
    limits = payload or UserActionCheckRequest()
    decision = limiter.check_user_limit(
        user_id,
        action,
        max_per_hour=limits.max_per_hour,
        max_per_day=limits.max_per_day,
    )
    return _limit_response(decision)
