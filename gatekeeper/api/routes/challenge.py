from __future__ import annotations

from fastapi import APIRouter, Depends

from gatekeeper.core.auth import verify_api_key
from gatekeeper.core.dependencies import get_challenge_service
from gatekeeper.schemas.gate import ChallengeResponse
from gatekeeper.services.challenge_service import ChallengeService

router = APIRouter(tags=["Challenge"])


@router.get(
    "/challenge",
    response_model=ChallengeResponse,
    dependencies=[Depends(verify_api_key)],
)
def new_challenge(
    service: ChallengeService = Depends(get_challenge_service),
) -> ChallengeResponse:
    """Generate a math challenge.

    The form renders ``label`` and posts ``hash`` back alongside the user's
    answer; the expected answer stays on the server side of the signature.
    """
    challenge = service.generate()
    return ChallengeResponse(label=challenge.label, hash=challenge.hash)
