"""Tests for the AI extraction service."""

import asyncio
import base64
import json
import threading
from types import SimpleNamespace

import pytest
from openai import AsyncOpenAI

from app.integratepdf.models import ExtractionPayload, StructuredDataItem
from app.integratepdf.services.ai import (
    EXTRACTION_RESPONSE_SCHEMA,
    AIService,
    AIServiceError,
    build_extraction_prompt,
    parse_extraction_response,
    parse_keywords,
)


class FakeCompletions:
    """Mimics client.chat.completions; records each request."""

    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.requests: list[dict] = []
        self.release: asyncio.Event | None = None

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


VALID_REPLY = json.dumps(
    {
        "fileName": "invoice.pdf",
        "extractedKeywords": ["Total"],
        "structuredData": [
            {"key": "Total", "value": "$99.00", "confidence": 0.93},
            {"key": "Due Date", "value": "2024-03-01", "confidence": 0.71},
        ],
    }
)


class TestParseKeywords:
    """Tests for keyword string parsing."""

    def test_splits_and_strips(self):
        assert parse_keywords(" Total , Due Date,") == ["Total", "Due Date"]

    def test_empty_values(self):
        assert parse_keywords(None) == []
        assert parse_keywords("") == []
        assert parse_keywords(" , ") == []


class TestExtractionPrompt:
    """Tests for prompt generation."""

    def test_prompt_with_keywords(self):
        prompt = build_extraction_prompt("invoice.pdf", "Total, Due Date")
        assert '"Total, Due Date"' in prompt
        assert "Prioritize" in prompt
        assert '"invoice.pdf"' in prompt

    def test_prompt_without_keywords_asks_for_everything(self):
        prompt = build_extraction_prompt("scan.pdf", None)
        assert '"None"' in prompt
        assert "comprehensive extraction" in prompt

    def test_response_schema_is_strict(self):
        assert EXTRACTION_RESPONSE_SCHEMA["additionalProperties"] is False
        item_schema = EXTRACTION_RESPONSE_SCHEMA["properties"]["structuredData"]["items"]
        assert item_schema["required"] == ["key", "value", "confidence"]


class TestParseExtractionResponse:
    """Tests for decoding the model reply."""

    def test_valid_reply(self):
        payload = parse_extraction_response(VALID_REPLY)
        assert payload.fileName == "invoice.pdf"
        assert [item.key for item in payload.structuredData] == ["Total", "Due Date"]

    def test_empty_reply_raises(self):
        with pytest.raises(AIServiceError, match="Empty response"):
            parse_extraction_response("")

    def test_invalid_json_raises(self):
        with pytest.raises(AIServiceError, match="Invalid JSON"):
            parse_extraction_response("{not json")

    def test_schema_mismatch_raises(self):
        with pytest.raises(AIServiceError, match="does not match schema"):
            parse_extraction_response(json.dumps({"structuredData": []}))

    def test_numeric_values_are_coerced_and_confidence_clamped(self):
        reply = json.dumps(
            {
                "fileName": "a.pdf",
                "extractedKeywords": [],
                "structuredData": [{"key": "Qty", "value": 3, "confidence": 1.4}],
            }
        )
        item = parse_extraction_response(reply).structuredData[0]
        assert item.value == "3"
        assert item.confidence == 1.0


class TestAIServiceMock:
    """Tests for AI service in mock mode."""

    def test_mock_mode_enabled_without_api_key(self):
        """Test that mock mode is enabled without API key."""
        service = AIService(api_key="", use_mock=False)
        assert service.use_mock is True

    def test_mock_mode_enabled_explicitly(self):
        service = AIService(api_key="fake-key", use_mock=True)
        assert service.use_mock is True

    async def test_extract_mock_includes_keywords(self, sample_pdf_bytes: bytes):
        service = AIService(use_mock=True)
        payload = await service.extract_structured_data("test.pdf", sample_pdf_bytes, "PO Number")

        assert isinstance(payload, ExtractionPayload)
        assert payload.fileName == "test.pdf"
        assert payload.extractedKeywords == ["PO Number"]
        assert any(item.key == "PO Number" for item in payload.structuredData)
        assert all(0 <= item.confidence <= 1 for item in payload.structuredData)


class TestAIServiceRequests:
    """Tests for requests sent to the completion endpoint."""

    async def test_file_mode_sends_pdf_and_schema(self, sample_pdf_bytes: bytes):
        completions = FakeCompletions(VALID_REPLY)
        service = AIService(api_key="key", model="gemini-test", input_mode="file")
        service._client = fake_client(completions)

        payload = await service.extract_structured_data("invoice.pdf", sample_pdf_bytes, "Total")

        assert payload.structuredData[0].value == "$99.00"
        request = completions.requests[0]
        assert request["model"] == "gemini-test"
        assert request["response_format"]["type"] == "json_schema"
        assert request["response_format"]["json_schema"]["strict"] is True
        assert request["response_format"]["json_schema"]["schema"] == EXTRACTION_RESPONSE_SCHEMA

        user_content = request["messages"][1]["content"]
        file_part = next(part for part in user_content if part["type"] == "file")
        encoded = file_part["file"]["file_data"].split("base64,", 1)[1]
        assert base64.b64decode(encoded) == sample_pdf_bytes

    async def test_images_mode_sends_rendered_pages(self, sample_pdf_bytes: bytes):
        class FakePDFService:
            def render_pages_as_png(self, pdf_bytes, max_pages):
                assert max_pages == 2
                return [b"\x89PNG-page-1", b"\x89PNG-page-2"]

        completions = FakeCompletions(VALID_REPLY)
        service = AIService(
            api_key="key", input_mode="images", max_pages=2, pdf_service=FakePDFService()
        )
        service._client = fake_client(completions)

        await service.extract_structured_data("invoice.pdf", sample_pdf_bytes)

        user_content = completions.requests[0]["messages"][1]["content"]
        assert [part["type"] for part in user_content] == ["text", "image_url", "image_url"]

    async def test_transport_failure_raises_service_error(self, sample_pdf_bytes: bytes):
        completions = FakeCompletions(error=RuntimeError("connection reset"))
        service = AIService(api_key="key")
        service._client = fake_client(completions)

        with pytest.raises(AIServiceError, match="connection reset"):
            await service.extract_structured_data("invoice.pdf", sample_pdf_bytes)

    def test_client_is_async(self):
        assert isinstance(AIService(api_key="key").client, AsyncOpenAI)

    async def test_event_loop_runs_while_waiting_for_reply(self, sample_pdf_bytes: bytes):
        completions = FakeCompletions(VALID_REPLY)
        completions.release = asyncio.Event()
        service = AIService(api_key="key")
        service._client = fake_client(completions)

        async def other_request():
            await asyncio.sleep(0)
            completions.release.set()
            return "served"

        payload, other = await asyncio.wait_for(
            asyncio.gather(
                service.extract_structured_data("invoice.pdf", sample_pdf_bytes),
                other_request(),
            ),
            timeout=5,
        )

        assert other == "served"
        assert payload.fileName == "invoice.pdf"

    async def test_pages_are_rendered_off_the_event_loop(self, sample_pdf_bytes: bytes):
        render_threads = []

        class RecordingPDFService:
            def render_pages_as_png(self, pdf_bytes, max_pages):
                render_threads.append(threading.get_ident())
                return [b"\x89PNG-page-1"]

        service = AIService(api_key="key", input_mode="images", pdf_service=RecordingPDFService())
        service._client = fake_client(FakeCompletions(VALID_REPLY))

        await service.extract_structured_data("invoice.pdf", sample_pdf_bytes)

        assert render_threads and render_threads[0] != threading.get_ident()


class TestStructuredDataItem:
    def test_blank_key_rejected(self):
        with pytest.raises(ValueError):
            StructuredDataItem(key="", value="x", confidence=0.5)
