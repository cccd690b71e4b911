from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; does not touch the counter store."""
    return {"status": "ok"}
