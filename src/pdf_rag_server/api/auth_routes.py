"""
Auth Routes

Tokens are issued by the account service; this server only revokes them.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from .models import ApiResponse
from ..auth.models import UserContext
from ..auth.revocation import TokenRevocationList
from ..auth.security import get_revocation_list, verify_jwt

logger = logging.getLogger("rag.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    user: Annotated[UserContext, Depends(verify_jwt)],
    revocations: Annotated[TokenRevocationList, Depends(get_revocation_list)],
) -> ApiResponse[None]:
    revocations.revoke(user.token, user.expires_at)
    logger.info("Token revoked for user %s", user.user_id)
    return ApiResponse(message="Logged out successfully")
