"""
Writegy Backend - User SQLAlchemy Model
=========================================

What:  ORM model representing the `users` table.
Who:   Created lazily by the user resolver on first authenticated request;
       read by every document operation for ownership checks.

Table Design:
    - external_id: the identity provider's subject claim (unique). Accounts
      created without one get a synthesized "local-..." value.
    - email: unique; the lookup key for find-or-create.
    - Users are never hard-deleted by the application.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"
    ADMIN = "ADMIN"


class User(Base):
    """
    A registered writer.

    Query Patterns:
        - Resolve caller: SELECT ... WHERE email = :email  (unique index)
        - Race recovery:  SELECT ... WHERE external_id = :sub  (unique index)
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    external_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="Identity provider subject; immutable after creation",
    )

    email: Mapped[str] = mapped_column(
        String(320),
        unique=True,
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=20),
        nullable=False,
        default=UserRole.FREE,
        server_default=text("'FREE'"),
    )

    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
