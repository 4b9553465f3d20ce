"""
Writegy Backend - Document Route Handlers
===========================================

What:  CRUD and hierarchy endpoints under /api/documents.
How:   Thin handlers: resolve the caller, delegate to DocumentService,
       return camelCase JSON. Errors are rendered by the global handlers.

Route Inventory:
    POST   /api/documents                     create (multipart, optional file)
    GET    /api/documents                     list the caller's documents
    GET    /api/documents/tree                all documents in level order
    GET    /api/documents/{id}                one document
    PUT    /api/documents/{id}                overwrite title/content
    DELETE /api/documents/{id}                delete; children become roots
    POST   /api/documents/{id}/parent         ?parentId=... re-parent
    DELETE /api/documents/{id}/parent         make root
    GET    /api/documents/{id}/children       direct children by treeOrder

/tree is declared before /{document_id} so it is not parsed as an id.
"""

import logging
from typing import Callable, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_current_user, get_storage_factory
from app.models.user import User
from app.schemas.common import ErrorResponse
from app.schemas.document import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdateRequest,
)
from app.services.document_service import document_service
from app.services.storage_service import Storage, UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])

NOT_FOUND = {404: {"description": "Document not found", "model": ErrorResponse}}


@router.post(
    "",
    status_code=201,
    response_model=DocumentResponse,
    responses={
        400: {"description": "Invalid title or file", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
        503: {"description": "File storage unavailable", "model": ErrorResponse},
    },
    summary="Create a document",
    description=(
        "Creates a root document from form fields. An optional PDF, DOC or DOCX "
        "file (max 5MB) is stored alongside it."
    ),
)
async def create_document(
    title: str = Form(..., description="Document title (1-500 characters)"),
    content: str = Form(default="", description="Document text"),
    file: Optional[UploadFile] = File(default=None, description="Optional source file"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage_factory: Callable[[], Storage] = Depends(get_storage_factory),
) -> DocumentResponse:
    upload: Optional[UploadedFile] = None
    if file is not None and file.filename:
        try:
            data = await file.read()
        finally:
            await file.close()
        upload = UploadedFile(
            filename=file.filename,
            content_type=file.content_type or "",
            data=data,
        )
        logger.info("Received document upload: filename=%s, size=%d bytes", file.filename, len(data))

    return await document_service.create(
        db=db,
        owner=user,
        title=title,
        content=content,
        upload=upload,
        storage=storage_factory() if upload is not None else None,
    )


@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List the caller's documents",
)
async def list_documents(
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentListResponse:
    result = await document_service.list_documents(db, user)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/tree",
    response_model=List[DocumentResponse],
    summary="All documents ordered by depth, then treeOrder",
)
async def get_document_tree(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[DocumentResponse]:
    return await document_service.list_tree(db, user)


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    responses=NOT_FOUND,
    summary="Get a single document",
)
async def get_document(
    document_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentResponse:
    return await document_service.get(db, user, document_id)


@router.put(
    "/{document_id}",
    response_model=DocumentResponse,
    responses=NOT_FOUND,
    summary="Update a document's title and content",
)
async def update_document(
    document_id: UUID,
    body: DocumentUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentResponse:
    return await document_service.update(
        db,
        user,
        document_id,
        title=body.title,
        content=body.content,
        status=body.status,
        tree_order=body.tree_order,
    )


@router.delete(
    "/{document_id}",
    status_code=204,
    responses=NOT_FOUND,
    summary="Delete a document",
)
async def delete_document(
    document_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await document_service.delete(db, user, document_id)
    return Response(status_code=204)


@router.post(
    "/{document_id}/parent",
    response_model=DocumentResponse,
    responses={
        **NOT_FOUND,
        409: {"description": "Move would create a cycle", "model": ErrorResponse},
    },
    summary="Move a document under another document",
)
async def set_document_parent(
    document_id: UUID,
    parent_id: UUID = Query(..., alias="parentId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentResponse:
    return await document_service.set_parent(db, user, document_id, parent_id)


@router.delete(
    "/{document_id}/parent",
    response_model=DocumentResponse,
    responses=NOT_FOUND,
    summary="Make a document a root",
)
async def remove_document_parent(
    document_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentResponse:
    return await document_service.remove_parent(db, user, document_id)


@router.get(
    "/{document_id}/children",
    response_model=List[DocumentResponse],
    responses=NOT_FOUND,
    summary="Direct children ordered by treeOrder",
)
async def list_document_children(
    document_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[DocumentResponse]:
    return await document_service.list_children(db, user, document_id)
