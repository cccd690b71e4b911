from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from gatekeeper.adapters.tickets import TicketConsumer
from gatekeeper.core.auth import verify_api_key
from gatekeeper.core.dependencies import get_ticket_pool
from gatekeeper.schemas.gate import (
    TicketConsumeRequest,
    TicketConsumeResponse,
    TicketPoolResponse,
    TicketSeedRequest,
)

router = APIRouter(prefix="/tickets", tags=["Tickets"], dependencies=[Depends(verify_api_key)])


@router.post("/{form_id}/consume", response_model=TicketConsumeResponse)
def consume_ticket(
    payload: TicketConsumeRequest,
    form_id: int = Path(..., ge=0),
    pool: TicketConsumer = Depends(get_ticket_pool),
) -> TicketConsumeResponse:
    """Consume a ticket once its submission was saved.

    Of two concurrent calls with the same ticket exactly one gets
    ``consumed: true``.
    """
    return TicketConsumeResponse(consumed=pool.consume_if_valid(form_id, payload.code))


@router.post("/{form_id}", response_model=TicketPoolResponse)
def seed_tickets(
    payload: TicketSeedRequest,
    form_id: int = Path(..., ge=0),
    pool: TicketConsumer = Depends(get_ticket_pool),
) -> TicketPoolResponse:
    """Add generated tickets to a form's pool; existing codes are kept once."""
    added = pool.seed(form_id, payload.codes)
    return TicketPoolResponse(added=added, remaining=pool.remaining(form_id))


@router.get("/{form_id}", response_model=TicketPoolResponse)
def ticket_pool_status(
    form_id: int = Path(..., ge=0),
    pool: TicketConsumer = Depends(get_ticket_pool),
) -> TicketPoolResponse:
    return TicketPoolResponse(remaining=pool.remaining(form_id))
