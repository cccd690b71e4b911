"""Ticket consumer interface.

``AccessRestrictionChecker.check`` only reports that a ticket *looks* valid.
Whether it is still unused is decided here, atomically, by a conditional
delete on the pool. Two protocols are offered:

- one-shot: ``consume_if_valid`` after the submission is saved;
- two-phase: ``reserve`` before saving, then ``confirm`` on success or
  ``release`` on failure, so a ticket cannot be handed to two concurrent
  submissions while the first one is still being saved.

Codes are stored canonically (upper-case, no dashes or spaces) whatever
the form's dash setting, so a code reported by the checker under either
setting always addresses the same pool entry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from gatekeeper.utils.normalizers import normalize_ticket


def canonical_ticket(code: str | None) -> str:
    """Pool spelling of a ticket code."""
    return normalize_ticket(code, ignore_dashes=True)


@dataclass(frozen=True)
class TicketReservation:
    form_id: int
    code: str
    token: str


class TicketConsumer(ABC):
    """Owns the pool of unused tickets per form."""

    @abstractmethod
    def seed(self, form_id: int, codes: list[str]) -> int:
        """Add codes to a form's pool; returns how many were new."""
        raise NotImplementedError

    @abstractmethod
    def contains(self, form_id: int, code: str) -> bool:
        """Whether ``code`` is still unused and unreserved for the form."""
        raise NotImplementedError

    @abstractmethod
    def consume_if_valid(self, form_id: int, code: str) -> bool:
        """Remove ``code`` from the pool if present; True when it was removed."""
        raise NotImplementedError

    @abstractmethod
    def reserve(self, form_id: int, code: str) -> TicketReservation | None:
        """Take ``code`` out of the pool pending confirmation."""
        raise NotImplementedError

    @abstractmethod
    def confirm(self, reservation: TicketReservation) -> bool:
        """Finalize a reservation; the code is consumed for good."""
        raise NotImplementedError

    @abstractmethod
    def release(self, reservation: TicketReservation) -> bool:
        """Put a reserved code back into the pool."""
        raise NotImplementedError

    @abstractmethod
    def remaining(self, form_id: int) -> int:
        """Unused, unreserved tickets left for a form."""
        raise NotImplementedError
