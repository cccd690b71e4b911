"""Historical submission counts (the persistent-store collaborator)."""

from gatekeeper.adapters.history.base import HistoricalCountStore
from gatekeeper.adapters.history.in_memory import InMemoryHistoricalCountStore

__all__ = ["HistoricalCountStore", "InMemoryHistoricalCountStore"]
