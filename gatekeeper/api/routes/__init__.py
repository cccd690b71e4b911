from __future__ import annotations

from gatekeeper.api.routes.challenge import router as challenge_router
from gatekeeper.api.routes.gate import router as gate_router
from gatekeeper.api.routes.health import router as health_router
from gatekeeper.api.routes.tickets import router as tickets_router

__all__ = ["challenge_router", "gate_router", "health_router", "tickets_router"]
