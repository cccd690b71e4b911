"""Ticket pool adapters (the ticket-consumption collaborator)."""

from gatekeeper.adapters.tickets.base import TicketConsumer, TicketReservation, canonical_ticket
from gatekeeper.adapters.tickets.in_memory import InMemoryTicketPool

__all__ = ["TicketConsumer", "TicketReservation", "InMemoryTicketPool", "canonical_ticket"]
