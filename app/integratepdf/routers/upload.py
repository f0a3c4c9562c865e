"""
Router for document upload.

Handles:
- File validation (name, size, type, PDF signature)
- Monthly quota and per-client rate limiting
- Storing the file and creating the pending document
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import get_settings
from ..database import get_db
from ..models import DocumentResponse, UploadResponse
from ..models_db import Document, DocumentStatus, User
from ..services.file_validation import sanitize_file_name, validate_upload
from ..services.rate_limit import upload_rate_limit
from ..services.storage_service import (
    StorageError,
    StorageService,
    build_storage_path,
    get_storage_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["upload"])


@router.post(
    "",
    response_model=UploadResponse,
    dependencies=[Depends(upload_rate_limit)],
)
async def upload_document(
    file: Annotated[UploadFile, File(description="PDF file to process")],
    keywords: Annotated[str | None, Form()] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
) -> UploadResponse:
    """
    Upload a PDF for later extraction.

    Nothing is stored when validation fails or the monthly limit is reached.
    The limit check is not atomic with the counter increment, so concurrent
    uploads can overshoot it by a few documents.
    """
    content = await file.read()
    file_name = file.filename or ""

    validation = validate_upload(
        file_name,
        file.content_type,
        content,
        max_size=get_settings().max_upload_bytes,
    )
    if not validation.is_valid:
        logger.info("Rejected upload %r: %s", file_name, validation.error)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=validation.error,
        )

    if user.documents_processed >= user.monthly_limit:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Monthly document limit reached",
                "limit": user.monthly_limit,
                "processed": user.documents_processed,
            },
        )

    safe_name = sanitize_file_name(file_name)
    storage_path = build_storage_path(user.id, safe_name)
    try:
        storage_path = await storage.upload(storage_path, content, file.content_type or "application/pdf")
    except StorageError as e:
        logger.error("Upload of %s failed: %s", storage_path, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file",
        )

    document = Document(
        user_id=user.id,
        filename=safe_name,
        file_size=len(content),
        file_type=file.content_type or "application/pdf",
        storage_path=storage_path,
        keywords=keywords or None,
        processing_status=DocumentStatus.PENDING,
    )
    db.add(document)
    user.documents_processed += 1
    db.commit()
    db.refresh(document)

    logger.info(
        "Uploaded %s (%d bytes) as document %s for user %s",
        safe_name,
        len(content),
        document.id,
        user.id,
    )
    return UploadResponse(
        document=DocumentResponse.model_validate(document),
        warnings=validation.warnings,
    )
