"""Tests for the extraction lifecycle."""

import uuid
from types import SimpleNamespace

import pytest

from app.integratepdf.models_db import Document, DocumentStatus, ExtractedField, User
from app.integratepdf.services.ai import AIServiceError
from app.integratepdf.services.extraction_worker import (
    ExtractionError,
    average_confidence,
    claim_document_for_processing,
    compute_extraction_statistics,
    mark_document_failed,
    run_extraction,
    run_extraction_in_background,
)


@pytest.fixture
def user(db_session) -> User:
    user = User(external_id="user_worker", email="worker@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def document(db_session, user, storage, sample_pdf_bytes) -> Document:
    path = f"{user.id}/1700000000000.pdf"
    target = storage.root / path
    target.parent.mkdir(parents=True)
    target.write_bytes(sample_pdf_bytes)
    document = Document(
        user_id=user.id,
        filename="invoice.pdf",
        file_size=len(sample_pdf_bytes),
        storage_path=path,
    )
    db_session.add(document)
    db_session.commit()
    return document


class TestAverageConfidence:
    def test_mean_of_values(self):
        assert average_confidence([0.9, 0.8, 0.7]) == pytest.approx(0.8)

    def test_nulls_are_ignored(self):
        assert average_confidence([None, 0.5, None, 1.0]) == pytest.approx(0.75)

    def test_no_values(self):
        assert average_confidence([]) is None
        assert average_confidence([None]) is None


class TestExtractionStatistics:
    """Tests for the per-document summary."""

    def test_empty(self):
        stats = compute_extraction_statistics([])
        assert stats.total_fields == 0
        assert stats.average_confidence == 0
        assert stats.correction_rate == 0

    def test_rounding(self):
        fields = [
            SimpleNamespace(confidence=0.333, is_corrected=True),
            SimpleNamespace(confidence=0.334, is_corrected=False),
            SimpleNamespace(confidence=None, is_corrected=False),
        ]
        stats = compute_extraction_statistics(fields)
        assert stats.total_fields == 3
        assert stats.average_confidence == pytest.approx(0.33)
        assert stats.corrected_fields == 1
        assert stats.correction_rate == 33

    def test_half_up_correction_rate(self):
        fields = [SimpleNamespace(confidence=1.0, is_corrected=i < 1) for i in range(8)]
        # 1 of 8 is 12.5%
        assert compute_extraction_statistics(fields).correction_rate == 13


class TestClaimDocument:
    """Tests for the conditional processing claim."""

    def test_claims_pending_document(self, db_session, user, document):
        assert claim_document_for_processing(db_session, document.id, user.id) is True

        db_session.refresh(document)
        assert document.processing_status == DocumentStatus.PROCESSING
        assert document.processing_started_at is not None
        assert document.processing_completed_at is None

    def test_second_claim_fails(self, db_session, user, document):
        assert claim_document_for_processing(db_session, document.id, user.id) is True
        assert claim_document_for_processing(db_session, document.id, user.id) is False

    def test_other_user_cannot_claim(self, db_session, document):
        stranger = User(external_id="user_stranger")
        db_session.add(stranger)
        db_session.commit()

        assert claim_document_for_processing(db_session, document.id, stranger.id) is False

    def test_failed_document_can_be_claimed_again(self, db_session, user, document):
        mark_document_failed(db_session, document.id, "boom")
        assert claim_document_for_processing(db_session, document.id, user.id) is True

        db_session.refresh(document)
        assert document.error_message is None


class TestRunExtraction:
    """Tests for the full extraction run."""

    async def test_success_persists_fields(self, db_session, document, storage, fake_ai_service):
        payload = await run_extraction(
            db_session, document.id, storage=storage, ai_service=fake_ai_service, keywords="Total"
        )

        assert len(payload.structuredData) == 3
        assert fake_ai_service.calls[0][0] == "invoice.pdf"
        assert fake_ai_service.calls[0][2] == "Total"

        db_session.refresh(document)
        assert document.processing_status == DocumentStatus.COMPLETED
        assert document.processing_completed_at >= document.processing_started_at
        assert document.confidence_score == pytest.approx(0.8)

        fields = db_session.query(ExtractedField).filter_by(document_id=document.id).all()
        assert {f.field_key for f in fields} == {"Invoice Number", "Total Amount", "Vendor"}
        assert all(f.extraction_method == "gemini" for f in fields)
        assert not any(f.is_corrected for f in fields)

    async def test_zero_items_leaves_confidence_empty(
        self, db_session, document, storage, fake_ai_service
    ):
        fake_ai_service.items = []

        await run_extraction(db_session, document.id, storage=storage, ai_service=fake_ai_service)

        db_session.refresh(document)
        assert document.processing_status == DocumentStatus.COMPLETED
        assert document.confidence_score is None

    async def test_ai_failure_marks_document_failed(
        self, db_session, document, storage, fake_ai_service
    ):
        fake_ai_service.error = AIServiceError("model unavailable")

        with pytest.raises(ExtractionError) as exc_info:
            await run_extraction(
                db_session, document.id, storage=storage, ai_service=fake_ai_service
            )

        assert exc_info.value.upstream is True
        db_session.refresh(document)
        assert document.processing_status == DocumentStatus.FAILED
        assert document.error_message == "model unavailable"
        assert document.processing_completed_at is not None

    async def test_missing_file_is_upstream_failure(
        self, db_session, document, storage, fake_ai_service
    ):
        await storage.remove([document.storage_path])

        with pytest.raises(ExtractionError) as exc_info:
            await run_extraction(
                db_session, document.id, storage=storage, ai_service=fake_ai_service
            )

        assert exc_info.value.upstream is True
        assert fake_ai_service.calls == []

    async def test_supplied_bytes_skip_download(self, db_session, document, storage, fake_ai_service):
        await storage.remove([document.storage_path])

        await run_extraction(
            db_session,
            document.id,
            storage=storage,
            ai_service=fake_ai_service,
            file_bytes=b"%PDF-inline",
        )

        assert fake_ai_service.calls[0][1] == b"%PDF-inline"

    async def test_unknown_document(self, db_session, storage, fake_ai_service):
        with pytest.raises(ExtractionError, match="not found"):
            await run_extraction(
                db_session, uuid.uuid4(), storage=storage, ai_service=fake_ai_service
            )

    async def test_background_variant_swallows_failure(
        self, session_factory, db_session, document, storage, fake_ai_service
    ):
        fake_ai_service.error = AIServiceError("quota exceeded")

        await run_extraction_in_background(
            session_factory, document.id, storage=storage, ai_service=fake_ai_service
        )

        db_session.refresh(document)
        assert document.processing_status == DocumentStatus.FAILED
        assert document.error_message == "quota exceeded"
