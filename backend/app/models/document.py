"""
Writegy Backend - Document SQLAlchemy Model
=============================================

What:  ORM model representing the `documents` table.
Who:   Used by DocumentService and DocumentTreeManager for CRUD and
       hierarchy operations, and by Alembic for schema management.

Table Design:
    - parent_id: weak self-reference (ON DELETE SET NULL). The application
      promotes children before deleting a parent, the FK action covers
      rows removed outside the API.
    - depth: parent.depth + 1, roots are 0. Kept in sync on re-parenting.
    - tree_order: sibling ordering, ascending.
    - word_count / character_count: nullable so legacy rows created before
      metrics existed can be detected and repaired on read.
    - owner_id: the owning user; cascades on user deletion.

    No ORM relationships are declared. Hierarchy traversal issues explicit
    queries so nothing lazy-loads inside the async session.

Indexes:
    (owner_id, depth, tree_order) serves the tree listing.
    (parent_id, tree_order) serves child listing.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


TITLE_MAX_LENGTH = 500


class Document(Base):
    """A user's piece of writing, optionally nested under another document."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default=text("''"),
    )

    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False, length=20),
        nullable=False,
        default=DocumentStatus.DRAFT,
        server_default=text("'DRAFT'"),
    )

    # ── Metrics ───────────────────────────────────────────────────────────
    word_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    character_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)

    # ── Timestamps ────────────────────────────────────────────────────────
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
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # Soft-delete marker; exposed in responses, never set by the API
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Hierarchy ─────────────────────────────────────────────────────────
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    depth: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    tree_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    # ── Ownership & Attachments ───────────────────────────────────────────
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    storage_key: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        comment="Object storage key of the uploaded source file",
    )

    __table_args__ = (
        Index("idx_documents_owner_tree", "owner_id", "depth", "tree_order"),
        Index("idx_documents_parent_order", "parent_id", "tree_order"),
    )

    @property
    def has_stale_metrics(self) -> bool:
        """True when counts are missing or zero although the content is not blank."""
        if not self.content or not self.content.strip():
            return False
        return not self.word_count or not self.character_count

    def __repr__(self) -> str:
        return (
            f"<Document(id={self.id}, title='{self.title[:30]}', "
            f"depth={self.depth}, parent_id={self.parent_id})>"
        )
