"""
Writegy Backend - Account Route Handlers
==========================================

What:  POST /auth/sync  persist the caller from a verified token
       GET  /auth/me    the current user (demo account when anonymous
                        and allowed)

/auth/sync requires a bearer token; it is what the web client calls right
after sign-in, so an anonymous call is a client bug, not a demo visit.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_current_user, get_identity_claims, get_user_resolver
from app.exceptions import UnauthorizedError
from app.models.user import User
from app.schemas.common import ErrorResponse
from app.schemas.user import UserResponse
from app.services.identity_service import IdentityClaims
from app.services.user_service import UserResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/sync",
    response_model=UserResponse,
    responses={
        400: {"description": "Token has no email claim", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
    },
    summary="Create or refresh the caller's account from their token",
)
async def sync_user(
    claims: Optional[IdentityClaims] = Depends(get_identity_claims),
    resolver: UserResolver = Depends(get_user_resolver),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    if claims is None:
        raise UnauthorizedError(message="A valid bearer token is required to sync the account")
    user = await resolver.resolve(db, claims)
    logger.info("Synced user %s", user.id)
    return UserResponse.model_validate(user)


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Not authenticated", "model": ErrorResponse}},
    summary="Current user",
)
async def read_current_user(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
