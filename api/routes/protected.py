"""
api/routes/protected.py -- Sample resource behind the Access Guard.

GET /protected answers only when require_session accepts the bearer token:
authentic, unexpired, and still the identity's live session.
"""

import logging

from fastapi import APIRouter, Depends

from api.models import MessageResponse
from auth.dependencies import require_session
from auth.models import TokenClaims

logger = logging.getLogger("authority.api.protected")

router = APIRouter()


@router.get("/protected", response_model=MessageResponse)
async def protected(claims: TokenClaims = Depends(require_session)) -> MessageResponse:
    logger.info("User %s accessed the protected endpoint.", claims.username)
    return MessageResponse(message=f"Hello {claims.username}, you have accessed a protected endpoint!")
