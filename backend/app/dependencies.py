"""
Writegy Backend - Request Dependencies
========================================

What:  FastAPI dependencies shared by the routers: identity claims, the
       current user, and the service singletons.
How:   Routes declare them with Depends(); tests replace them through
       app.dependency_overrides.

Identity Policy:
    no Authorization header                → anonymous (None)
    header present but not "Bearer <jwt>"  → 401
    token fails verification               → 401
    identity provider unreachable          → 503 in production,
                                             anonymous elsewhere
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.exceptions import IdentityProviderError, UnauthorizedError
from app.models.user import User
from app.services.grammar_service import GrammarService, grammar_service
from app.services.identity_service import IdentityClaims, IdentityVerifier, identity_verifier
from app.services.storage_service import Storage, get_storage
from app.services.user_service import UserResolver, user_resolver

logger = logging.getLogger(__name__)


def get_identity_verifier() -> IdentityVerifier:
    return identity_verifier


def get_user_resolver() -> UserResolver:
    return user_resolver


def get_grammar_service() -> GrammarService:
    return grammar_service


def get_storage_factory() -> Callable[[], Storage]:
    """The storage getter itself; create_document calls it only for uploads."""
    return get_storage


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization is None or not authorization.strip():
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError(message="Authorization header must be 'Bearer <token>'")
    return token.strip()


async def get_identity_claims(
    authorization: Optional[str] = Header(default=None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Optional[IdentityClaims]:
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return await verifier.verify(token)
    except IdentityProviderError as e:
        if settings.is_production:
            raise
        logger.warning("Identity provider unavailable (%s); treating request as anonymous", e.message)
        return None


async def get_current_user(
    claims: Optional[IdentityClaims] = Depends(get_identity_claims),
    resolver: UserResolver = Depends(get_user_resolver),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    return await resolver.resolve(db, claims)
