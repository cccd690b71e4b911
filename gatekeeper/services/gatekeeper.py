"""Submission gate: challenge, rate limits, then access restrictions.

This is the sequence a submission handler runs before saving anything.
Each stage short-circuits; the returned ``GateDecision`` says which stage
decided and carries everything a UI needs (message, countdown) and an
audit trail needs (reason, scope, subject category; never raw subjects).

After saving, the handler calls ``record_submission`` so the email and
identifier limits see the new record and a presented ticket is consumed.
When a ticket pool is wired it is authoritative: a ticket listed in the
form configuration but already consumed (or never seeded) is denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from gatekeeper.adapters.audit.base import AuditEvent, AuditSink
from gatekeeper.adapters.history.base import HistoricalCountStore
from gatekeeper.adapters.settings.base import SettingsProvider
from gatekeeper.adapters.tickets.base import TicketConsumer
from gatekeeper.core.errors import AppError
from gatekeeper.core.logging import hash_subject
from gatekeeper.schemas.rate_limit import RateLimitSettings
from gatekeeper.schemas.restrictions import FormRestrictionConfig
from gatekeeper.services.access_restriction import TICKET_INVALID, AccessRestrictionChecker
from gatekeeper.services.challenge_service import ChallengeService
from gatekeeper.services.rate_limiter import LimitDecision, RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class SubmissionAttempt:
    ip: str | None
    email: str | None = None
    identifier: str | None = None
    user_id: int | None = None
    form_id: int = 0
    form_config: FormRestrictionConfig | None = None
    ticket_code: str | None = None
    password: str | None = None
    security_fields: Mapping[str, Any] = field(default_factory=dict)
    require_challenge: bool = True


@dataclass(frozen=True)
class GateDecision:
    """Final verdict for one submission attempt.

    ``stage`` is ``challenge``, ``rate_limit`` or ``restriction`` for a
    denial and "" when every stage passed.
    """

    allowed: bool
    stage: str = ""
    reason: str = ""
    message: str = ""
    wait_seconds: int = 0
    scope: str = ""
    subject_category: str = ""
    is_ticket: bool = False
    ticket_code: str = ""
    degraded: bool = False


@dataclass(frozen=True)
class SubmissionRecord:
    """Outcome of ``record_submission``.

    ``ticket_consumed`` is None when no ticket was presented.
    """

    recorded: bool
    ticket_consumed: bool | None = None


class SubmissionGatekeeper:
    def __init__(
        self,
        *,
        challenge: ChallengeService,
        limiter: RateLimiter,
        restrictions: AccessRestrictionChecker,
        settings_provider: SettingsProvider,
        tickets: TicketConsumer | None = None,
        history: HistoricalCountStore | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        self._challenge = challenge
        self._limiter = limiter
        self._restrictions = restrictions
        self._settings_provider = settings_provider
        self._tickets = tickets
        self._history = history
        self._audit_sink = audit_sink

    def evaluate(self, attempt: SubmissionAttempt) -> GateDecision:
        """Run every stage in order; the first failure is returned."""
        if attempt.require_challenge:
            challenge = self._challenge.validate_security_fields(attempt.security_fields)
            if not challenge.valid:
                decision = GateDecision(
                    allowed=False,
                    stage="challenge",
                    reason=challenge.reason,
                    message=challenge.message,
                )
                self._audit(decision, attempt)
                return decision

        limit = self._limiter.check_all(
            attempt.ip,
            attempt.email,
            attempt.identifier,
            attempt.user_id,
        )
        if not limit.allowed:
            decision = self._from_limit(limit)
            self._audit(decision, attempt)
            return decision

        decision = GateDecision(
            allowed=True,
            scope=limit.scope,
            subject_category=limit.subject_category,
            degraded=limit.degraded,
        )

        if attempt.form_config is not None:
            restriction = self._restrictions.check(
                attempt.form_config,
                attempt.identifier,
                attempt.ticket_code,
                attempt.form_id,
                password=attempt.password,
            )
            if not restriction.allowed:
                decision = GateDecision(
                    allowed=False,
                    stage="restriction",
                    reason=restriction.policy,
                    message=restriction.message,
                    scope=restriction.policy,
                    subject_category="identifier"
                    if restriction.policy in ("denylist", "allowlist")
                    else "form",
                    degraded=limit.degraded,
                )
            elif restriction.is_ticket and not self._ticket_unused(
                attempt.form_id, restriction.ticket_code
            ):
                decision = GateDecision(
                    allowed=False,
                    stage="restriction",
                    reason="ticket",
                    message=TICKET_INVALID,
                    scope="ticket",
                    subject_category="form",
                    degraded=limit.degraded,
                )
            elif restriction.is_ticket:
                decision = GateDecision(
                    allowed=True,
                    scope=limit.scope,
                    subject_category=limit.subject_category,
                    is_ticket=True,
                    ticket_code=restriction.ticket_code,
                    degraded=limit.degraded,
                )

        self._audit(decision, attempt)
        return decision

    def confirm_ticket(self, form_id: int, code: str) -> bool:
        """Consume a ticket after the submission was saved.

        Must be called exactly once per successful ``is_ticket`` submission;
        False means another submission consumed it first.
        """
        if self._tickets is None:
            logger.warning("ticket.consumer_missing", extra={"form_id": form_id})
            return False
        return self._tickets.consume_if_valid(form_id, code)

    def record_submission(
        self,
        *,
        email: str | None = None,
        identifier: str | None = None,
        form_id: int = 0,
        ticket_code: str | None = None,
    ) -> SubmissionRecord:
        """Register a saved submission with the history and ticket pool."""
        recorded = False
        if self._history is None:
            logger.warning("history.recorder_missing", extra={"form_id": form_id})
        elif email or identifier:
            self._history.record(email=email, identifier=identifier)
            recorded = True

        consumed = self.confirm_ticket(form_id, ticket_code) if ticket_code else None
        logger.info(
            "submission.recorded",
            extra={
                "form_id": form_id,
                "recorded": recorded,
                "ticket_consumed": consumed,
                "subject_hash": hash_subject(email or identifier),
            },
        )
        return SubmissionRecord(recorded=recorded, ticket_consumed=consumed)

    def _ticket_unused(self, form_id: int, code: str) -> bool:
        if self._tickets is None:
            return True
        return self._tickets.contains(form_id, code)

    @staticmethod
    def _from_limit(limit: LimitDecision) -> GateDecision:
        return GateDecision(
            allowed=False,
            stage="rate_limit",
            reason=limit.reason,
            message=limit.message,
            wait_seconds=limit.wait_seconds,
            scope=limit.scope,
            subject_category=limit.subject_category,
            degraded=limit.degraded,
        )

    def _logging_settings(self) -> RateLimitSettings | None:
        try:
            return self._settings_provider.get_rate_limit_settings()
        except AppError:
            return None

    @staticmethod
    def _subject_for(category: str, attempt: SubmissionAttempt) -> str | None:
        if category == "ip":
            return attempt.ip
        if category in ("email", "email_domain"):
            return attempt.email
        if category == "identifier":
            return attempt.identifier
        if category == "user":
            return str(attempt.user_id) if attempt.user_id else None
        return None

    def _audit(self, decision: GateDecision, attempt: SubmissionAttempt) -> None:
        if self._audit_sink is None:
            return

        snapshot = self._logging_settings()
        events: list[str] = []
        if snapshot is not None and snapshot.logging.enabled:
            if decision.allowed and snapshot.logging.log_allowed:
                events.append("allowed")
            if not decision.allowed and snapshot.logging.log_blocked:
                events.append("blocked")
        if decision.degraded:
            events.append("degraded")

        for name in events:
            event = AuditEvent(
                event=name,
                stage=decision.stage,
                reason=decision.reason,
                scope=decision.scope,
                subject_category=decision.subject_category,
                subject_hash=hash_subject(self._subject_for(decision.subject_category, attempt)),
                details={"form_id": attempt.form_id, "wait_seconds": decision.wait_seconds},
            )
            try:
                self._audit_sink.record(event)
            except Exception:
                logger.warning("audit.record_failed", exc_info=True)
