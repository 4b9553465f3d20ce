"""
Writegy Backend - User Resolver
=================================

What:  Maps verified identity claims (or an anonymous request) to a
       persisted User, creating the account on first sight.
Who:   The get_current_user dependency and POST /auth/sync.

Anonymous Policy:
    Outside production, with DEMO_USER_ENABLED, anonymous requests act as
    the demo account. Everywhere else they are rejected with 401.

Find-or-Create:
    1. SELECT by email
    2. Found → refresh the display name when the claim differs
    3. Missing → INSERT inside a savepoint. A unique violation means a
       concurrent request created the row first; the savepoint is rolled
       back and the row is read again by email or external_id.
    4. Stamp last_login_at
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import DatabaseError, UnauthorizedError, ValidationError
from app.models.user import User, UserRole
from app.services.identity_service import IdentityClaims

logger = logging.getLogger(__name__)


def derive_name(email: str) -> str:
    """'jane.doe@example.com' → 'Jane.doe'"""
    local = email.split("@", 1)[0]
    if not local:
        return email
    return local[0].upper() + local[1:]


def synthesize_external_id(email: str) -> str:
    """Stable subject for accounts created without one."""
    return "local-" + email.replace("@", "-").replace(".", "-")


class UserResolver:

    def __init__(
        self,
        demo_enabled: Optional[bool] = None,
        demo_email: Optional[str] = None,
        demo_name: Optional[str] = None,
        production: Optional[bool] = None,
    ):
        self.demo_enabled = settings.demo_user_enabled if demo_enabled is None else demo_enabled
        self.demo_email = demo_email or settings.demo_user_email
        self.demo_name = demo_name or settings.demo_user_name
        self.production = settings.is_production if production is None else production

    @property
    def allows_demo(self) -> bool:
        return self.demo_enabled and not self.production

    async def resolve(self, db: AsyncSession, claims: Optional[IdentityClaims]) -> User:
        """
        Return the User for this request.

        Raises:
            UnauthorizedError: anonymous request and no demo account allowed.
            ValidationError: verified token without an email claim.
        """
        if claims is None:
            if not self.allows_demo:
                raise UnauthorizedError()
            return await self.find_or_create(
                db,
                email=self.demo_email,
                name=self.demo_name,
                email_verified=True,
            )

        if not claims.email:
            raise ValidationError(
                message="Authentication token does not include an email address",
                field="email",
            )
        return await self.find_or_create(
            db,
            email=claims.email,
            name=claims.name,
            external_id=claims.subject,
            email_verified=claims.email_verified,
        )

    async def find_or_create(
        self,
        db: AsyncSession,
        email: str,
        name: Optional[str] = None,
        external_id: Optional[str] = None,
        email_verified: bool = False,
    ) -> User:
        if not email or not email.strip():
            raise ValidationError(message="Email is required", field="email")
        email = email.strip()

        user = await self._find_by_email(db, email)
        if user is None:
            user = await self._create(db, email, name, external_id, email_verified)
        elif name and user.name != name:
            logger.info("Updating display name for user %s", user.id)
            user.name = name

        if email_verified and not user.email_verified:
            user.email_verified = True
        user.last_login_at = datetime.now(timezone.utc)
        await db.flush()
        return user

    async def _create(
        self,
        db: AsyncSession,
        email: str,
        name: Optional[str],
        external_id: Optional[str],
        email_verified: bool,
    ) -> User:
        external_id = external_id or synthesize_external_id(email)
        user = User(
            external_id=external_id,
            email=email,
            name=name or derive_name(email),
            role=UserRole.FREE,
            email_verified=email_verified,
        )
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            logger.info("Concurrent signup for %s, reading existing user", email)
            existing = await self._find_existing(db, email, external_id)
            if existing is None:
                raise DatabaseError(
                    message="Could not create the user account. Please try again.",
                    context={"email": email},
                )
            return existing

        logger.info("Created user %s (%s)", user.id, email)
        return user

    @staticmethod
    async def _find_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def _find_existing(db: AsyncSession, email: str, external_id: str) -> Optional[User]:
        result = await db.execute(
            select(User)
            .where(or_(User.email == email, User.external_id == external_id))
            .limit(1)
        )
        return result.scalars().first()


user_resolver = UserResolver()
