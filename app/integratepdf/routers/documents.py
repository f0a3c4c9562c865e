"""
Router for document-related endpoints.

Handles:
- Listing, reading and deleting the caller's documents
- Processing status polling
- CSV export of extracted fields
"""

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_owned_document
from ..database import get_db
from ..models import DocumentListResponse, DocumentResponse, DocumentStatusResponse
from ..models_db import Document, DocumentStatus, ExtractedField, User
from ..services.csv_export import convert_to_csv
from ..services.storage_service import StorageError, StorageService, get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    documents = (
        db.query(Document)
        .filter(Document.user_id == user.id)
        .order_by(Document.created_at.desc())
        .all()
    )
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in documents],
        total=len(documents),
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DocumentResponse:
    document = get_owned_document(db, user, document_id)
    return DocumentResponse.model_validate(document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
) -> Response:
    """
    Delete a document, its extracted fields and the stored file.

    A failure to remove the file is logged and does not block the delete.
    """
    document = get_owned_document(db, user, document_id)

    try:
        await storage.remove([document.storage_path])
    except StorageError as e:
        logger.warning("Failed to remove file %s: %s", document.storage_path, e)

    db.delete(document)
    db.commit()
    logger.info("Deleted document %s", document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{document_id}/status", response_model=DocumentStatusResponse)
async def get_document_status(
    document_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DocumentStatusResponse:
    """
    Poll a document's processing state.

    The duration is whole seconds between start and completion; the field
    count is only reported once processing has completed.
    """
    document = get_owned_document(db, user, document_id)

    duration = None
    if document.processing_started_at and document.processing_completed_at:
        elapsed = document.processing_completed_at - document.processing_started_at
        duration = math.floor(elapsed.total_seconds() + 0.5)

    fields_count = 0
    if document.processing_status == DocumentStatus.COMPLETED:
        fields_count = (
            db.query(ExtractedField)
            .filter(ExtractedField.document_id == document.id)
            .count()
        )

    return DocumentStatusResponse(
        id=document.id,
        filename=document.filename,
        processing_status=document.processing_status,
        processing_started_at=document.processing_started_at,
        processing_completed_at=document.processing_completed_at,
        processing_duration_seconds=duration,
        confidence_score=document.confidence_score,
        error_message=document.error_message,
        extracted_fields_count=fields_count,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


@router.get("/{document_id}/export")
async def export_document(
    document_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    """Download the extracted fields as CSV."""
    document = get_owned_document(db, user, document_id)
    fields = (
        db.query(ExtractedField)
        .filter(ExtractedField.document_id == document.id, ExtractedField.user_id == user.id)
        .order_by(ExtractedField.created_at)
        .all()
    )

    try:
        export = convert_to_csv(fields, document.filename)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
