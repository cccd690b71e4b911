"""Form-level access restriction policies.

Policies run in a fixed order and the first failure wins:

    password -> denylist -> allowlist -> ticket

Denylist before allowlist means an identifier present in both lists is
blocked. The check never consumes a ticket: it reports ``is_ticket`` and the
submission path calls the TicketConsumer exactly once after saving. Until
that consume succeeds, a positive ticket result is not authoritative, since
another submission may be presenting the same ticket concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gatekeeper.core.logging import hash_subject
from gatekeeper.schemas.restrictions import FormRestrictionConfig
from gatekeeper.utils.normalizers import normalize_identifier, normalize_ticket, split_lines

logger = logging.getLogger(__name__)

PASSWORD_REQUIRED = "Password is required."
PASSWORD_INCORRECT = "Incorrect password."
IDENTIFIER_BLOCKED = "Your identifier is blocked."
IDENTIFIER_NOT_AUTHORIZED = "Your identifier is not authorized."
TICKET_REQUIRED = "Ticket code is required."
TICKET_INVALID = "Invalid or already used ticket."


@dataclass(frozen=True)
class RestrictionResult:
    """Outcome of ``AccessRestrictionChecker.check``.

    Attributes:
        allowed: Whether every enabled policy passed.
        message: User-facing failure text ("" when allowed).
        is_ticket: A ticket policy passed; the caller must consume the ticket.
        policy: Policy that failed ("" when allowed).
        ticket_code: Normalized ticket to consume when ``is_ticket``.
    """

    allowed: bool
    message: str = ""
    is_ticket: bool = False
    policy: str = ""
    ticket_code: str = ""


def _normalized_entries(raw: str) -> set[str]:
    return {normalize_identifier(entry) for entry in split_lines(raw)} - {""}


def remove_ticket(codes_text: str, code: str, *, ignore_dashes: bool = True) -> str:
    """Return ``codes_text`` without ``code``; other lines keep their spelling.

    Used by callers that store the pool inside the form configuration.
    """
    target = normalize_ticket(code, ignore_dashes=ignore_dashes)
    kept = [
        line
        for line in split_lines(codes_text)
        if normalize_ticket(line, ignore_dashes=ignore_dashes) != target
    ]
    return "\n".join(kept)


class AccessRestrictionChecker:
    """Evaluates a form's restriction policies against one attempt."""

    def _deny(self, policy: str, message: str, form_id: int, identifier: str) -> RestrictionResult:
        logger.info(
            "restriction.denied",
            extra={"policy": policy, "form_id": form_id, "subject_hash": hash_subject(identifier)},
        )
        return RestrictionResult(allowed=False, message=message, policy=policy)

    def check(
        self,
        form_config: FormRestrictionConfig,
        identifier: str | None,
        ticket_code: str | None,
        form_id: int,
        *,
        password: str | None = None,
    ) -> RestrictionResult:
        """Run the enabled policies in order.

        Args:
            form_config: Restriction configuration of the form.
            identifier: Identifier typed by the user (any formatting).
            ticket_code: Ticket typed by the user.
            form_id: Form being submitted (for logs and consumption).
            password: Password typed by the user.

        Returns:
            RestrictionResult; never raises.
        """
        flags = form_config.restrictions
        clean_identifier = normalize_identifier(identifier)

        if flags.password:
            submitted = (password or "").strip()
            if not submitted:
                return self._deny("password", PASSWORD_REQUIRED, form_id, clean_identifier)
            if submitted != form_config.validation_code:
                return self._deny("password", PASSWORD_INCORRECT, form_id, clean_identifier)

        if flags.denylist:
            denied = _normalized_entries(form_config.denied_users_list)
            if clean_identifier and clean_identifier in denied:
                return self._deny("denylist", IDENTIFIER_BLOCKED, form_id, clean_identifier)

        if flags.allowlist:
            allowed = _normalized_entries(form_config.allowed_users_list)
            if not clean_identifier or clean_identifier not in allowed:
                return self._deny("allowlist", IDENTIFIER_NOT_AUTHORIZED, form_id, clean_identifier)

        if flags.ticket:
            ignore_dashes = form_config.ticket_ignore_dashes
            ticket = normalize_ticket(ticket_code, ignore_dashes=ignore_dashes)
            if not ticket:
                return self._deny("ticket", TICKET_REQUIRED, form_id, clean_identifier)

            pool = {
                normalize_ticket(line, ignore_dashes=ignore_dashes)
                for line in split_lines(form_config.generated_codes_list)
            }
            if ticket not in pool:
                return self._deny("ticket", TICKET_INVALID, form_id, clean_identifier)

            return RestrictionResult(allowed=True, is_ticket=True, ticket_code=ticket)

        return RestrictionResult(allowed=True)
