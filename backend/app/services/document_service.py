"""
Writegy Backend - Document Service (Business Logic Orchestrator)
==================================================================

What:  Create, read, update and delete documents; hierarchy operations are
       delegated to DocumentTreeManager.
How:   Composes the metrics calculator, the tree manager and the storage
       backend around one database session per call.
Who:   Called by the /api/documents route handlers.

Create Flow (POST /api/documents):
    ┌──────────┐    ┌──────────────┐    ┌──────────┐    ┌──────────┐
    │ Validate │───▶│ Upload file  │───▶│ Metrics  │───▶│ Persist  │
    │  title   │    │ (optional)   │    │          │    │  (DB)    │
    └──────────┘    └──────────────┘    └──────────┘    └──────────┘

    If persisting fails after an upload, the stored object is removed on a
    best-effort basis.

Ownership:
    Every lookup is scoped to the caller. Another user's document is
    reported as not found.

Concurrency:
    Updates are single-row read-modify-write in the request transaction;
    the last write wins.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, StorageError, ValidationError
from app.models.document import TITLE_MAX_LENGTH, Document, DocumentStatus
from app.models.user import User
from app.schemas.document import DocumentListResponse, DocumentResponse
from app.services.document_tree import DocumentTreeManager, document_tree
from app.services.metrics import calculate_metrics
from app.services.storage_service import Storage, UploadedFile, validate_upload

logger = logging.getLogger(__name__)


def to_response(document: Document, owner: User) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        title=document.title,
        content=document.content or "",
        status=document.status,
        word_count=document.word_count,
        character_count=document.character_count,
        created_at=document.created_at,
        updated_at=document.updated_at,
        deleted_at=document.deleted_at,
        parent_id=document.parent_id,
        depth=document.depth,
        tree_order=document.tree_order,
        storage_key=document.storage_key,
        user_id=document.owner_id,
        user_email=owner.email,
        user_name=owner.name,
    )


def _clean_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError(message="Title is required", field="title")
    if len(cleaned) > TITLE_MAX_LENGTH:
        raise ValidationError(
            message=f"Title must be at most {TITLE_MAX_LENGTH} characters",
            field="title",
            context={"length": len(cleaned)},
        )
    return cleaned


class DocumentService:
    """
    Business logic layer for document operations.

    Database errors are wrapped in DatabaseError; application errors
    (NotFound, Validation, CircularReference, Storage) propagate unchanged.
    """

    def __init__(self, tree: Optional[DocumentTreeManager] = None):
        self.tree = tree or document_tree

    async def create(
        self,
        db: AsyncSession,
        owner: User,
        title: str,
        content: Optional[str] = None,
        upload: Optional[UploadedFile] = None,
        storage: Optional[Storage] = None,
    ) -> DocumentResponse:
        """
        Create a root document, optionally attaching an uploaded file.

        The content is always the caller's text; the file is stored
        alongside, not parsed.

        Raises:
            ValidationError: blank/oversized title or a rejected upload.
            StorageError: the storage backend failed.
            DatabaseError: the insert failed.
        """
        clean_title = _clean_title(title)
        text = content or ""

        storage_key: Optional[str] = None
        if upload is not None:
            validate_upload(upload)
            if storage is None:
                raise StorageError(message="File storage is not configured")
            storage_key = await storage.upload(
                upload.data,
                upload.content_type,
                upload.filename,
                prefix=str(owner.id),
            )

        metrics = calculate_metrics(text)
        now = datetime.now(timezone.utc)
        document = Document(
            id=uuid.uuid4(),
            title=clean_title,
            content=text,
            status=DocumentStatus.DRAFT,
            word_count=metrics.word_count,
            character_count=metrics.character_count,
            created_at=now,
            updated_at=now,
            depth=0,
            tree_order=0,
            owner_id=owner.id,
            storage_key=storage_key,
        )

        try:
            db.add(document)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to insert document for user %s: %s", owner.id, str(e))
            if storage_key and storage is not None:
                await self._discard_upload(storage, storage_key)
            raise DatabaseError(
                message="Could not save the document. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info(
            "Document %s created (%d words, file=%s)",
            document.id,
            metrics.word_count,
            storage_key or "none",
        )
        return to_response(document, owner)

    async def list_documents(self, db: AsyncSession, owner: User) -> DocumentListResponse:
        """
        All of the owner's documents, newest first.

        Rows with stale metrics (missing or zero counts on non-blank
        content) are recomputed and saved as part of the read.
        """
        try:
            result = await db.execute(
                select(Document)
                .where(Document.owner_id == owner.id)
                .order_by(Document.created_at.desc())
            )
            documents = list(result.scalars().all())

            repaired = 0
            for document in documents:
                if document.has_stale_metrics:
                    metrics = calculate_metrics(document.content)
                    document.word_count = metrics.word_count
                    document.character_count = metrics.character_count
                    repaired += 1
            if repaired:
                await db.flush()
                logger.info("Repaired metrics on %d documents for user %s", repaired, owner.id)
        except SQLAlchemyError as e:
            logger.error("Database error listing documents: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve documents. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        return DocumentListResponse(
            documents=[to_response(d, owner) for d in documents],
            total_count=len(documents),
        )

    async def get(self, db: AsyncSession, owner: User, document_id: uuid.UUID) -> DocumentResponse:
        document = await self.tree.load(db, owner.id, document_id)
        return to_response(document, owner)

    async def update(
        self,
        db: AsyncSession,
        owner: User,
        document_id: uuid.UUID,
        title: str,
        content: Optional[str],
        status: Optional[DocumentStatus] = None,
        tree_order: Optional[int] = None,
    ) -> DocumentResponse:
        """Overwrite title and content, recompute metrics, stamp updated_at."""
        clean_title = _clean_title(title)
        document = await self.tree.load(db, owner.id, document_id)

        text = content or ""
        metrics = calculate_metrics(text)
        document.title = clean_title
        document.content = text
        document.word_count = metrics.word_count
        document.character_count = metrics.character_count
        if status is not None:
            document.status = status
        if tree_order is not None:
            document.tree_order = tree_order
        document.updated_at = datetime.now(timezone.utc)

        await db.flush()
        logger.info("Document %s updated (%d words)", document.id, metrics.word_count)
        return to_response(document, owner)

    async def delete(self, db: AsyncSession, owner: User, document_id: uuid.UUID) -> None:
        """
        Remove a document. Its children become roots, carrying their own
        subtrees with them.
        """
        document = await self.tree.load(db, owner.id, document_id)
        children = await self.tree.list_children(db, owner.id, document_id)
        for child in children:
            await self.tree.promote_to_root(db, child)

        await db.delete(document)
        await db.flush()
        logger.info("Document %s deleted, %d children promoted to roots", document_id, len(children))

    # ── Hierarchy ─────────────────────────────────────────────────────────

    async def set_parent(
        self,
        db: AsyncSession,
        owner: User,
        document_id: uuid.UUID,
        parent_id: uuid.UUID,
    ) -> DocumentResponse:
        document = await self.tree.set_parent(db, owner.id, document_id, parent_id)
        return to_response(document, owner)

    async def remove_parent(
        self,
        db: AsyncSession,
        owner: User,
        document_id: uuid.UUID,
    ) -> DocumentResponse:
        document = await self.tree.remove_parent(db, owner.id, document_id)
        return to_response(document, owner)

    async def list_children(
        self,
        db: AsyncSession,
        owner: User,
        parent_id: uuid.UUID,
    ) -> List[DocumentResponse]:
        children = await self.tree.list_children(db, owner.id, parent_id)
        return [to_response(d, owner) for d in children]

    async def list_tree(self, db: AsyncSession, owner: User) -> List[DocumentResponse]:
        documents = await self.tree.list_tree(db, owner.id)
        return [to_response(d, owner) for d in documents]

    @staticmethod
    async def _discard_upload(storage: Storage, key: str) -> None:
        try:
            await storage.delete(key)
        except StorageError as e:
            logger.warning("Failed to remove orphaned upload %s: %s", key, e.message)


document_service = DocumentService()
