"""Tests for Pydantic models."""

import uuid

import pytest
from pydantic import ValidationError

from app.integratepdf.models import (
    ExtractionPayload,
    ExtractResponse,
    PushFieldData,
    PushRequest,
    StructuredDataItem,
    UpdateFieldRequest,
)
from app.integratepdf.models_db import DocumentStatus


class TestStructuredDataItem:
    """Tests for StructuredDataItem model."""

    def test_confidence_clamped_low(self):
        item = StructuredDataItem(key="Total", value="5", confidence=-0.2)
        assert item.confidence == 0.0

    def test_boolean_value_coerced(self):
        item = StructuredDataItem(key="Paid", value=True, confidence=0.5)
        assert item.value == "True"

    def test_missing_confidence(self):
        with pytest.raises(ValidationError):
            StructuredDataItem(key="Total", value="5")


class TestExtractionPayload:
    def test_defaults(self):
        payload = ExtractionPayload(fileName="a.pdf")
        assert payload.extractedKeywords == []
        assert payload.structuredData == []


class TestExtractResponse:
    """Tests for the camelCase wire format."""

    def test_serializes_by_alias(self):
        document_id = uuid.uuid4()
        response = ExtractResponse(
            success=True, document_id=document_id, status=DocumentStatus.PROCESSING
        )
        dumped = response.model_dump(by_alias=True, exclude_none=True, mode="json")
        assert dumped == {
            "success": True,
            "documentId": str(document_id),
            "status": "processing",
        }


class TestPushRequest:
    def test_accepts_camel_case_document_id(self):
        request = PushRequest.model_validate(
            {"documentId": "abc", "data": [{"field_key": "Total", "field_value": 12.5}]}
        )
        assert request.document_id == "abc"
        assert request.data[0].field_value == "12.5"
        assert request.mapping is None

    def test_blank_field_key_rejected(self):
        with pytest.raises(ValidationError):
            PushFieldData(field_key="", field_value="x")


class TestUpdateFieldRequest:
    def test_explicit_null_value_is_tracked(self):
        request = UpdateFieldRequest.model_validate({"field_id": "f1", "field_value": None})
        assert "field_value" in request.model_fields_set
        assert request.is_corrected is True

    def test_omitted_value_is_not_tracked(self):
        request = UpdateFieldRequest.model_validate({"field_id": "f1"})
        assert "field_value" not in request.model_fields_set
