"""
Document extraction lifecycle.

Handles:
- Claiming a document for processing (single conditional UPDATE)
- Running extraction: download, AI call, field insert, completion stamp
- Marking documents failed, including the compensating path when dispatch fails
- Summary statistics over extracted fields
"""

import logging
import math
import uuid
from collections.abc import Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from ..models import ExtractionPayload, ExtractionStatistics
from ..models_db import Document, DocumentStatus, ExtractedField, utcnow
from .ai import AIService, AIServiceError
from .storage_service import StorageError, StorageService

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """
    Raised when extraction of a document fails.

    The document has already been marked failed when this is raised.
    `upstream` is True when the AI or storage provider caused the failure.
    """

    def __init__(self, message: str, upstream: bool = False):
        super().__init__(message)
        self.upstream = upstream


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def average_confidence(confidences: Sequence[float | None]) -> float | None:
    """Arithmetic mean of the non-null values, None when there are none."""
    values = [c for c in confidences if c is not None]
    if not values:
        return None
    return sum(values) / len(values)


def compute_extraction_statistics(fields: Sequence[ExtractedField]) -> ExtractionStatistics:
    """
    Summary shown next to a document's extracted fields.

    average_confidence is rounded half-up to 2 decimals (0 with no fields);
    correction_rate is an integer percentage.
    """
    total = len(fields)
    corrected = sum(1 for f in fields if f.is_corrected)
    mean = average_confidence([f.confidence for f in fields])
    return ExtractionStatistics(
        total_fields=total,
        average_confidence=_round_half_up(mean, 2) if mean is not None else 0,
        corrected_fields=corrected,
        correction_rate=int(_round_half_up(corrected / total * 100)) if total else 0,
    )


def claim_document_for_processing(
    db: Session, document_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    """
    Atomically move a document owned by `user_id` into processing.

    Returns False when the document is already processing, so two concurrent
    triggers can never both run extraction.
    """
    now = utcnow()
    result = db.execute(
        update(Document)
        .where(
            Document.id == document_id,
            Document.user_id == user_id,
            Document.processing_status != DocumentStatus.PROCESSING,
        )
        .values(
            processing_status=DocumentStatus.PROCESSING,
            processing_started_at=now,
            processing_completed_at=None,
            error_message=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    claimed = result.rowcount == 1
    if claimed:
        logger.info("Document %s claimed for processing", document_id)
    return claimed


def mark_document_failed(db: Session, document_id: uuid.UUID, message: str) -> None:
    """Record a terminal failure for the document."""
    document = db.get(Document, document_id)
    if document is None:
        logger.warning("Cannot mark missing document %s as failed", document_id)
        return
    document.processing_status = DocumentStatus.FAILED
    document.processing_completed_at = utcnow()
    document.error_message = message
    db.commit()
    logger.info("Document %s marked failed: %s", document_id, message)


async def run_extraction(
    db: Session,
    document_id: uuid.UUID,
    *,
    storage: StorageService,
    ai_service: AIService,
    keywords: str | None = None,
    file_bytes: bytes | None = None,
    extraction_method: str = "gemini",
) -> ExtractionPayload:
    """
    Extract fields for one document and persist them.

    Steps: mark processing, fetch the bytes (unless supplied), call the AI
    service, insert the fields, then mark completed with the mean confidence.
    Any failure marks the document failed and raises ExtractionError. Fields
    inserted before a later failure are kept.

    Args:
        db: Session used for every step.
        document_id: Document to process.
        storage: Blob storage holding the PDF.
        ai_service: Extraction backend.
        keywords: Optional comma separated keywords.
        file_bytes: PDF content when the caller already has it.
        extraction_method: Tag stored on each field.
    """
    document = db.get(Document, document_id)
    if document is None:
        raise ExtractionError(f"Document {document_id} not found")

    try:
        document.processing_status = DocumentStatus.PROCESSING
        document.processing_started_at = utcnow()
        db.commit()

        if file_bytes is None:
            file_bytes = await storage.download(document.storage_path)

        payload = await ai_service.extract_structured_data(
            document.filename, file_bytes, keywords
        )

        fields = [
            ExtractedField(
                document_id=document.id,
                user_id=document.user_id,
                field_key=item.key,
                field_value=item.value,
                data_type="string",
                confidence=item.confidence,
                extraction_method=extraction_method,
                is_corrected=False,
            )
            for item in payload.structuredData
        ]
        db.add_all(fields)
        db.commit()

        document.processing_status = DocumentStatus.COMPLETED
        document.processing_completed_at = utcnow()
        document.confidence_score = average_confidence(
            [item.confidence for item in payload.structuredData]
        )
        document.error_message = None
        db.commit()

        logger.info(
            "Document %s completed: %d field(s), confidence %s",
            document_id,
            len(fields),
            document.confidence_score,
        )
        return payload

    except Exception as e:
        logger.exception("Extraction failed for document %s", document_id)
        db.rollback()
        mark_document_failed(db, document_id, str(e))
        raise ExtractionError(
            str(e), upstream=isinstance(e, (AIServiceError, StorageError))
        ) from e


async def run_extraction_in_background(
    session_factory: sessionmaker,
    document_id: uuid.UUID,
    *,
    storage: StorageService,
    ai_service: AIService,
    keywords: str | None = None,
    extraction_method: str = "gemini",
) -> None:
    """
    Background task variant of run_extraction.

    Opens its own session since the request session is closed by the time
    the task runs. Failures are already recorded on the document.
    """
    db = session_factory()
    try:
        await run_extraction(
            db,
            document_id,
            storage=storage,
            ai_service=ai_service,
            keywords=keywords,
            extraction_method=extraction_method,
        )
    except ExtractionError as e:
        logger.error("Background extraction failed for document %s: %s", document_id, e)
    finally:
        db.close()
