"""Lock-protected, in-process ticket pool."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict

from gatekeeper.adapters.tickets.base import TicketConsumer, TicketReservation, canonical_ticket
from gatekeeper.core.logging import hash_subject

logger = logging.getLogger(__name__)


class InMemoryTicketPool(TicketConsumer):
    """Ticket pool for tests and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pool: dict[int, set[str]] = defaultdict(set)
        self._reserved: dict[str, TicketReservation] = {}

    def seed(self, form_id: int, codes: list[str]) -> int:
        normalized = {canonical_ticket(c) for c in codes} - {""}
        with self._lock:
            pool = self._pool[form_id]
            added = normalized - pool
            pool.update(added)
            return len(added)

    def contains(self, form_id: int, code: str) -> bool:
        normalized = canonical_ticket(code)
        with self._lock:
            return bool(normalized) and normalized in self._pool.get(form_id, ())

    def consume_if_valid(self, form_id: int, code: str) -> bool:
        normalized = canonical_ticket(code)
        if not normalized:
            return False
        with self._lock:
            pool = self._pool.get(form_id)
            if pool is None or normalized not in pool:
                consumed = False
            else:
                pool.discard(normalized)
                consumed = True
        logger.info(
            "ticket.consume",
            extra={"form_id": form_id, "consumed": consumed, "ticket_hash": hash_subject(normalized)},
        )
        return consumed

    def reserve(self, form_id: int, code: str) -> TicketReservation | None:
        normalized = canonical_ticket(code)
        if not normalized:
            return None
        with self._lock:
            pool = self._pool.get(form_id)
            if pool is None or normalized not in pool:
                return None
            pool.discard(normalized)
            reservation = TicketReservation(form_id=form_id, code=normalized, token=uuid.uuid4().hex)
            self._reserved[reservation.token] = reservation
            return reservation

    def confirm(self, reservation: TicketReservation) -> bool:
        with self._lock:
            return self._reserved.pop(reservation.token, None) is not None

    def release(self, reservation: TicketReservation) -> bool:
        with self._lock:
            held = self._reserved.pop(reservation.token, None)
            if held is None:
                return False
            self._pool[held.form_id].add(held.code)
            return True

    def remaining(self, form_id: int) -> int:
        with self._lock:
            return len(self._pool.get(form_id, ()))
