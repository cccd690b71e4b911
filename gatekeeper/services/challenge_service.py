"""Math challenge and honeypot verification.

The challenge is stateless: the server signs the expected answer, the
client echoes the signature back with the user's answer, and verification
recomputes the signature. Nothing is stored server-side.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from gatekeeper.core.config import ChallengeSettings

logger = logging.getLogger(__name__)

HONEYPOT_MESSAGE = "Security Error: Request blocked (Honeypot)."
MISSING_ANSWER_MESSAGE = "Error: Please answer the security question."
WRONG_ANSWER_MESSAGE = "Error: The math answer is incorrect."


@dataclass(frozen=True)
class Challenge:
    """A generated challenge. ``answer`` must never be sent to the client."""

    label: str
    hash: str
    answer: int


@dataclass(frozen=True)
class ChallengeResult:
    """Outcome of ``validate_security_fields``.

    Attributes:
        valid: Whether the security fields passed.
        message: User-facing failure text ("" when valid).
        reason: ``honeypot``, ``missing_answer`` or ``wrong_answer``.
    """

    valid: bool
    message: str = ""
    reason: str = ""


def _random_operand() -> int:
    return secrets.randbelow(9) + 1


class ChallengeService:
    """Generates and verifies the arithmetic challenge."""

    def __init__(
        self,
        challenge_settings: ChallengeSettings,
        *,
        rng: Callable[[], int] = _random_operand,
    ) -> None:
        self._settings = challenge_settings
        self._key = challenge_settings.secret_key.encode()
        self._rng = rng

    def _digest(self, answer: str) -> str:
        message = f"{answer}{self._settings.salt}".encode()
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def generate(self) -> Challenge:
        """Draw two operands in 1..9 and sign their sum."""
        first, second = self._rng(), self._rng()
        answer = first + second
        return Challenge(
            label=f"Security: How much is {first} + {second}?",
            hash=self._digest(str(answer)),
            answer=answer,
        )

    def verify_answer(self, answer: Any, expected_hash: Any) -> bool:
        """Check a submitted answer against a challenge hash.

        Fails closed when either input is empty.
        """
        submitted = "" if answer is None else str(answer).strip()
        signature = "" if expected_hash is None else str(expected_hash).strip()
        if not submitted or not signature:
            return False
        return hmac.compare_digest(self._digest(submitted), signature)

    def validate_security_fields(self, fields: Mapping[str, Any]) -> ChallengeResult:
        """Honeypot first, then answer presence, then answer correctness."""
        cfg = self._settings

        if fields.get(cfg.honeypot_field):
            logger.warning("challenge.failed", extra={"reason": "honeypot"})
            return ChallengeResult(valid=False, message=HONEYPOT_MESSAGE, reason="honeypot")

        answer = fields.get(cfg.answer_field)
        expected_hash = fields.get(cfg.hash_field)
        if answer is None or expected_hash is None:
            logger.info("challenge.failed", extra={"reason": "missing_answer"})
            return ChallengeResult(valid=False, message=MISSING_ANSWER_MESSAGE, reason="missing_answer")

        if not self.verify_answer(answer, expected_hash):
            logger.info("challenge.failed", extra={"reason": "wrong_answer"})
            return ChallengeResult(valid=False, message=WRONG_ANSWER_MESSAGE, reason="wrong_answer")

        return ChallengeResult(valid=True)
