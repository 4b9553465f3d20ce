"""
Writegy Backend - Document Tree Manager
=========================================

What:  Parent/child links, depth bookkeeping and sibling ordering for a
       user's documents.
Who:   DocumentService delegates every hierarchy operation here.

Invariants:
    - the parent chain of every document is acyclic
    - depth == length of the chain up to the root (roots are 0)

Re-parenting (set_parent):
    1. Load the document and the proposed parent (owner-scoped)
    2. Walk the ancestor chain upward from the parent. Meeting the
       document itself, revisiting a node, or exceeding max_depth steps
       means the move would close a cycle: CircularReferenceError, nothing
       modified.
    3. Collect the document's subtree level by level and check that the
       deepest descendant stays within max_depth: ValidationError otherwise
    4. Apply: parent link, depth, and the shifted depth of every descendant

The ancestor walk reads without locks. Two concurrent opposite moves can
both pass the check; the window is accepted.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import CircularReferenceError, NotFoundError, ValidationError
from app.models.document import Document

logger = logging.getLogger(__name__)


class DocumentTreeManager:

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = max_depth or settings.max_tree_depth

    # ── Lookups ───────────────────────────────────────────────────────────

    @staticmethod
    async def load(
        db: AsyncSession,
        owner_id: uuid.UUID,
        document_id: uuid.UUID,
        resource: str = "document",
    ) -> Document:
        """Fetch one of the owner's documents or raise NotFoundError."""
        result = await db.execute(
            select(Document).where(
                Document.id == document_id,
                Document.owner_id == owner_id,
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError(resource=resource, resource_id=str(document_id))
        return document

    async def list_children(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        parent_id: uuid.UUID,
    ) -> List[Document]:
        """Direct children of `parent_id`, ascending by tree_order."""
        await self.load(db, owner_id, parent_id, resource="parent document")
        result = await db.execute(
            select(Document)
            .where(Document.parent_id == parent_id, Document.owner_id == owner_id)
            .order_by(Document.tree_order.asc(), Document.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_tree(self, db: AsyncSession, owner_id: uuid.UUID) -> List[Document]:
        """
        All of the owner's documents ordered by (depth, tree_order).

        This is level order: every root first, then every depth-1 document,
        and so on. Clients rebuild nesting from parentId.
        """
        result = await db.execute(
            select(Document)
            .where(Document.owner_id == owner_id)
            .order_by(
                Document.depth.asc(),
                Document.tree_order.asc(),
                Document.created_at.asc(),
            )
        )
        return list(result.scalars().all())

    # ── Mutations ─────────────────────────────────────────────────────────

    async def set_parent(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        document_id: uuid.UUID,
        parent_id: uuid.UUID,
    ) -> Document:
        """
        Move `document_id` under `parent_id`.

        Raises:
            NotFoundError: either document is missing or not the owner's.
            CircularReferenceError: parent is the document or a descendant.
            ValidationError: the moved subtree would exceed max_depth.
        """
        document = await self.load(db, owner_id, document_id)
        parent = await self.load(db, owner_id, parent_id, resource="parent document")

        await self._ensure_not_descendant(db, document.id, parent)

        new_depth = parent.depth + 1
        subtree = await self._collect_subtree(db, document)
        self._ensure_depth_fits(document, new_depth, subtree)

        document.parent_id = parent.id
        self._apply_depth(document, new_depth, subtree)
        await db.flush()

        logger.info(
            "Moved document %s under %s (depth=%d, %d descendants updated)",
            document.id,
            parent.id,
            new_depth,
            len(subtree),
        )
        return document

    async def remove_parent(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        document_id: uuid.UUID,
    ) -> Document:
        """Make `document_id` a root; descendants move up with it."""
        document = await self.load(db, owner_id, document_id)
        await self.promote_to_root(db, document)
        await db.flush()
        logger.info("Document %s is now a root", document.id)
        return document

    async def promote_to_root(self, db: AsyncSession, document: Document) -> None:
        """Detach `document` from its parent and re-base its subtree at depth 0."""
        subtree = await self._collect_subtree(db, document)
        document.parent_id = None
        self._apply_depth(document, 0, subtree)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _ensure_not_descendant(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        parent: Document,
    ) -> None:
        if parent.id == document_id:
            raise CircularReferenceError(str(document_id), str(parent.id))

        visited = {parent.id}
        current = parent.parent_id
        steps = 0
        while current is not None:
            if current == document_id:
                raise CircularReferenceError(str(document_id), str(parent.id))
            steps += 1
            if current in visited or steps > self.max_depth:
                logger.warning(
                    "Ancestor chain of %s is corrupt or deeper than %d; refusing move",
                    parent.id,
                    self.max_depth,
                )
                raise CircularReferenceError(
                    str(document_id),
                    str(parent.id),
                    context={"reason": "ancestor_chain_unbounded"},
                )
            visited.add(current)
            result = await db.execute(
                select(Document.parent_id).where(Document.id == current)
            )
            current = result.scalar_one_or_none()

    async def _collect_subtree(
        self,
        db: AsyncSession,
        root: Document,
    ) -> List[Tuple[Document, int]]:
        """Descendants of `root` with their distance from it, level by level."""
        descendants: List[Tuple[Document, int]] = []
        seen = {root.id}
        level_ids = [root.id]
        distance = 0
        while level_ids:
            distance += 1
            result = await db.execute(
                select(Document).where(
                    Document.parent_id.in_(level_ids),
                    Document.owner_id == root.owner_id,
                )
            )
            next_ids = []
            for child in result.scalars().all():
                if child.id in seen:
                    continue
                seen.add(child.id)
                descendants.append((child, distance))
                next_ids.append(child.id)
            level_ids = next_ids
        return descendants

    def _ensure_depth_fits(
        self,
        document: Document,
        new_depth: int,
        subtree: List[Tuple[Document, int]],
    ) -> None:
        height = max((distance for _, distance in subtree), default=0)
        if new_depth + height > self.max_depth:
            raise ValidationError(
                message=f"Document hierarchy cannot be deeper than {self.max_depth} levels",
                field="parentId",
                context={
                    "document_id": str(document.id),
                    "resulting_depth": new_depth + height,
                    "max_depth": self.max_depth,
                },
            )

    @staticmethod
    def _apply_depth(
        document: Document,
        depth: int,
        subtree: List[Tuple[Document, int]],
    ) -> None:
        document.depth = depth
        document.updated_at = datetime.now(timezone.utc)
        for descendant, distance in subtree:
            descendant.depth = depth + distance


document_tree = DocumentTreeManager()
