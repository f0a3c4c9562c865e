"""
Router for extraction endpoints.

Handles:
- Triggering extraction (inline, or as a background task)
- Reading extracted fields with statistics
- Manual correction of a single field
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from ..auth import get_current_user, get_owned_document, parse_uuid
from ..config import get_settings
from ..database import get_db, get_session_factory
from ..models import (
    DocumentResponse,
    ExtractedDataResponse,
    ExtractedFieldResponse,
    ExtractRequest,
    ExtractResponse,
    UpdateFieldRequest,
    UpdateFieldResponse,
)
from ..models_db import DocumentStatus, ExtractedField, User
from ..services.ai import AIService, get_ai_service
from ..services.extraction_worker import (
    ExtractionError,
    claim_document_for_processing,
    compute_extraction_statistics,
    mark_document_failed,
    run_extraction,
    run_extraction_in_background,
)
from ..services.storage_service import StorageService, get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["extraction"])


@router.post(
    "/{document_id}/extract",
    response_model=ExtractResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def trigger_extraction(
    document_id: str,
    background_tasks: BackgroundTasks,
    request: ExtractRequest | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
    ai_service: AIService = Depends(get_ai_service),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> ExtractResponse:
    """
    Start extraction for a document.

    The document is claimed with a single conditional update, so a second
    trigger while it is processing gets 409. Keywords default to the ones
    given at upload. In background mode the call returns immediately and
    the client polls the status endpoint.
    """
    document = get_owned_document(db, user, document_id)
    keywords = request.keywords if request and request.keywords is not None else document.keywords

    if not claim_document_for_processing(db, document.id, user.id):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "error": "Document is already being processed",
                "status": DocumentStatus.PROCESSING.value,
            },
        )

    settings = get_settings()

    if settings.extraction_mode == "background":
        try:
            background_tasks.add_task(
                run_extraction_in_background,
                session_factory,
                document.id,
                storage=storage,
                ai_service=ai_service,
                keywords=keywords,
                extraction_method=settings.extraction_method,
            )
        except Exception:
            logger.exception("Failed to schedule extraction for document %s", document.id)
            mark_document_failed(db, document.id, "Failed to queue document for processing")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to queue document for processing",
            )
        return ExtractResponse(
            success=True,
            document_id=document.id,
            status=DocumentStatus.PROCESSING,
            message="Document processing started",
        )

    try:
        payload = await run_extraction(
            db,
            document.id,
            storage=storage,
            ai_service=ai_service,
            keywords=keywords,
            extraction_method=settings.extraction_method,
        )
    except ExtractionError as e:
        if e.upstream:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to process document: {e}",
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process document",
        )

    return ExtractResponse(
        success=True,
        document_id=document.id,
        status=DocumentStatus.COMPLETED,
        message="Document processed successfully",
        extracted_data=payload,
    )


def _document_fields(db: Session, document_id, user_id) -> list[ExtractedField]:
    return (
        db.query(ExtractedField)
        .filter(ExtractedField.document_id == document_id, ExtractedField.user_id == user_id)
        .order_by(ExtractedField.created_at)
        .all()
    )


@router.get("/{document_id}/extracted", response_model=ExtractedDataResponse)
async def get_extracted_data(
    document_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ExtractedDataResponse:
    """Return a document with its extracted fields and summary statistics."""
    document = get_owned_document(db, user, document_id)
    fields = _document_fields(db, document.id, user.id)

    return ExtractedDataResponse(
        document=DocumentResponse.model_validate(document),
        extracted_data=[ExtractedFieldResponse.model_validate(f) for f in fields],
        statistics=compute_extraction_statistics(fields),
    )


@router.put("/{document_id}/extracted", response_model=UpdateFieldResponse)
async def update_extracted_field(
    document_id: str,
    request: UpdateFieldRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UpdateFieldResponse:
    """
    Correct one extracted field.

    `original_value` is only written when the caller sends it; the value
    before the correction is not captured automatically.
    """
    if not request.field_id or "field_value" not in request.model_fields_set:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="field_id and field_value are required",
        )

    document = get_owned_document(db, user, document_id)
    field_uuid = parse_uuid(request.field_id, "field")

    field = (
        db.query(ExtractedField)
        .filter(
            ExtractedField.id == field_uuid,
            ExtractedField.document_id == document.id,
            ExtractedField.user_id == user.id,
        )
        .first()
    )
    if not field:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Field not found",
        )

    field.field_value = request.field_value
    field.is_corrected = request.is_corrected
    if request.original_value is not None:
        field.original_value = request.original_value
    db.commit()
    db.refresh(field)

    logger.info("Field %s of document %s corrected", field.id, document.id)
    return UpdateFieldResponse(
        success=True,
        message="Field updated successfully",
        updated_field=ExtractedFieldResponse.model_validate(field),
    )
