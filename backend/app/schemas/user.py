"""
Writegy Backend - User Schemas
================================

What:  Response body for /auth/sync and /auth/me.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.models.user import UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: uuid.UUID
    external_id: str
    email: str
    name: str
    role: UserRole
    email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
