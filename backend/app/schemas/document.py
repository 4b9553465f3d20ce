"""
Writegy Backend - Document Request/Response Schemas
=====================================================

What:  Pydantic models defining the document API contract.
How:   Responses are built from ORM rows (`from_attributes`); the owner's
       email and name are attached by the service layer.

Field names are camelCase on the wire (parentId, wordCount, ...) to match
the web client; Python code uses snake_case through aliases.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.document import TITLE_MAX_LENGTH, DocumentStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class DocumentResponse(_CamelModel):
    """
    Full representation of a document.

    Returned by every document endpoint, including list, tree and children
    listings. Hierarchy fields let the client rebuild the tree without
    extra requests.
    """
    id: uuid.UUID
    title: str
    content: str
    status: DocumentStatus
    word_count: int = Field(description="Whitespace-delimited tokens in content")
    character_count: int = Field(description="Content length excluding whitespace")
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    parent_id: Optional[uuid.UUID] = None
    depth: int
    tree_order: int
    storage_key: Optional[str] = None
    user_id: uuid.UUID
    user_email: Optional[str] = None
    user_name: Optional[str] = None

    @field_validator("word_count", "character_count", mode="before")
    @classmethod
    def default_missing_counts(cls, v: Optional[int]) -> int:
        return v or 0


class DocumentListResponse(_CamelModel):
    documents: List[DocumentResponse]
    total_count: int


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class DocumentUpdateRequest(_CamelModel):
    """
    Body of PUT /api/documents/{id}.

    Title and content are overwritten; status and treeOrder are optional
    and left untouched when omitted.
    """
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str = Field(default="")
    status: Optional[DocumentStatus] = None
    tree_order: Optional[int] = Field(default=None, ge=0)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v.strip()
