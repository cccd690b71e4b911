"""Redis-backed ticket pool.

Each form's unused tickets are a Redis set. ``SREM`` and ``SMOVE`` are
atomic conditional deletes, so of two concurrent submissions presenting the
same ticket exactly one wins.
"""

from __future__ import annotations

import logging
import uuid

import redis

from gatekeeper.adapters.tickets.base import TicketConsumer, TicketReservation, canonical_ticket
from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.core.logging import hash_subject

logger = logging.getLogger(__name__)


class RedisTicketPool(TicketConsumer):
    def __init__(self, client: "redis.Redis", *, prefix: str = "gk") -> None:
        self._client = client
        self._prefix = prefix

    def _pool_key(self, form_id: int) -> str:
        return f"{self._prefix}:tickets:{form_id}"

    def _reserved_key(self, form_id: int) -> str:
        return f"{self._prefix}:tickets:{form_id}:reserved"

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.warning(
            "ticket_pool.unavailable",
            extra={"backend": "redis", "operation": operation, "error_type": type(exc).__name__},
        )
        return StoreUnavailableError(
            code="ticket_pool_unavailable",
            message="Ticket pool is unavailable",
            details={"backend": "redis", "operation": operation},
        )

    def seed(self, form_id: int, codes: list[str]) -> int:
        normalized = sorted({canonical_ticket(c) for c in codes} - {""})
        if not normalized:
            return 0
        try:
            return int(self._client.sadd(self._pool_key(form_id), *normalized))
        except redis.RedisError as exc:
            raise self._unavailable("seed", exc) from exc

    def contains(self, form_id: int, code: str) -> bool:
        normalized = canonical_ticket(code)
        if not normalized:
            return False
        try:
            return bool(self._client.sismember(self._pool_key(form_id), normalized))
        except redis.RedisError as exc:
            raise self._unavailable("contains", exc) from exc

    def consume_if_valid(self, form_id: int, code: str) -> bool:
        normalized = canonical_ticket(code)
        if not normalized:
            return False
        try:
            consumed = bool(self._client.srem(self._pool_key(form_id), normalized))
        except redis.RedisError as exc:
            raise self._unavailable("consume", exc) from exc
        logger.info(
            "ticket.consume",
            extra={"form_id": form_id, "consumed": consumed, "ticket_hash": hash_subject(normalized)},
        )
        return consumed

    def reserve(self, form_id: int, code: str) -> TicketReservation | None:
        normalized = canonical_ticket(code)
        if not normalized:
            return None
        try:
            moved = self._client.smove(self._pool_key(form_id), self._reserved_key(form_id), normalized)
        except redis.RedisError as exc:
            raise self._unavailable("reserve", exc) from exc
        if not moved:
            return None
        return TicketReservation(form_id=form_id, code=normalized, token=uuid.uuid4().hex)

    def confirm(self, reservation: TicketReservation) -> bool:
        try:
            return bool(self._client.srem(self._reserved_key(reservation.form_id), reservation.code))
        except redis.RedisError as exc:
            raise self._unavailable("confirm", exc) from exc

    def release(self, reservation: TicketReservation) -> bool:
        try:
            return bool(
                self._client.smove(
                    self._reserved_key(reservation.form_id),
                    self._pool_key(reservation.form_id),
                    reservation.code,
                )
            )
        except redis.RedisError as exc:
            raise self._unavailable("release", exc) from exc

    def remaining(self, form_id: int) -> int:
        try:
            return int(self._client.scard(self._pool_key(form_id)))
        except redis.RedisError as exc:
            raise self._unavailable("remaining", exc) from exc
