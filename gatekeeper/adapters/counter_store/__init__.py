"""Counter store adapters.

Windowed counters and cooldown markers live behind ``AbstractCounterStore``
so the limiter can run on process memory in tests and single-worker setups,
and on Redis when several workers share one budget.
"""

from gatekeeper.adapters.counter_store.base import (
    AbstractCounterStore,
    CounterKey,
    CounterScope,
    Window,
)

__all__ = ["AbstractCounterStore", "CounterKey", "CounterScope", "Window"]
