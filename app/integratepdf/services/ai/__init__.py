"""
AI service package for structured data extraction.

- extraction: prompt, response schema and the completion call
- exceptions: shared error type

AIService wraps the client lifecycle, input mode selection and mock mode.
"""

import asyncio
import logging

from openai import AsyncOpenAI

from ...config import get_settings
from ...models import ExtractionPayload, StructuredDataItem
from ..pdf_service import PDFService, get_pdf_service
from .exceptions import AIServiceError
from .extraction import (
    EXTRACTION_RESPONSE_SCHEMA,
    build_extraction_prompt,
    extract_structured_data as _extract_structured_data,
    parse_extraction_response,
    parse_keywords,
)

logger = logging.getLogger(__name__)

__all__ = [
    "AIService",
    "AIServiceError",
    "EXTRACTION_RESPONSE_SCHEMA",
    "build_extraction_prompt",
    "get_ai_service",
    "parse_extraction_response",
    "parse_keywords",
]


class AIService:
    """
    Service for AI-powered document extraction.

    Talks to any OpenAI-compatible chat completion endpoint; the default
    configuration targets Gemini. Without an API key it runs in mock mode.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        input_mode: str | None = None,
        max_pages: int | None = None,
        use_mock: bool = False,
        pdf_service: PDFService | None = None,
    ):
        """
        Initialize the AI service.

        Args:
            api_key: API key. If None, read from settings.
            base_url: Completion endpoint. If None, read from settings.
            model: Model name. If None, read from settings.
            input_mode: "file" sends the PDF itself, "images" sends rendered pages.
            max_pages: Page cap for the images input mode.
            use_mock: If True, return mock data instead of calling the API.
            pdf_service: Renderer used by the images input mode.
        """
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.ai_api_key
        self.base_url = base_url or settings.ai_base_url
        self.model = model or settings.ai_model
        self.input_mode = input_mode or settings.ai_input_mode
        self.max_pages = max_pages or settings.ai_max_pages
        self.use_mock = use_mock or not self.api_key
        self._pdf_service = pdf_service
        self._client = None

        if self.use_mock:
            logger.warning(
                "AI Service running in MOCK MODE. Set AI_API_KEY in .env for real extraction."
            )

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load the OpenAI-compatible async client."""
        if self._client is None:
            if not self.api_key:
                raise AIServiceError(
                    "AI API key not provided. Set AI_API_KEY environment variable."
                )
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    @property
    def pdf_service(self) -> PDFService:
        if self._pdf_service is None:
            self._pdf_service = get_pdf_service()
        return self._pdf_service

    async def extract_structured_data(
        self, file_name: str, pdf_bytes: bytes, keywords: str | None = None
    ) -> ExtractionPayload:
        """
        Extract key/value/confidence triples from a PDF.

        Args:
            file_name: Original file name.
            pdf_bytes: Raw PDF content.
            keywords: Optional comma separated keywords to prioritise.

        Returns:
            Validated ExtractionPayload.

        Raises:
            AIServiceError: On transport failure or an invalid reply.
        """
        if self.use_mock:
            return self._get_mock_extraction(file_name, keywords)

        page_images = None
        if self.input_mode == "images":
            # pdf2image shells out to poppler; keep it off the event loop
            page_images = await asyncio.to_thread(
                self.pdf_service.render_pages_as_png, pdf_bytes, self.max_pages
            )

        return await _extract_structured_data(
            file_name,
            pdf_bytes,
            keywords,
            client=self.client,
            model=self.model,
            page_images=page_images,
        )

    def _get_mock_extraction(self, file_name: str, keywords: str | None) -> ExtractionPayload:
        """Return mock extraction data for development."""
        keyword_list = parse_keywords(keywords)
        items = [
            StructuredDataItem(key="Invoice Number", value="MOCK-INV-001", confidence=0.95),
            StructuredDataItem(key="Invoice Date", value="2024-01-15", confidence=0.9),
            StructuredDataItem(key="Vendor Name", value="Mock Supplies Inc.", confidence=0.85),
            StructuredDataItem(key="Total Amount", value="$1,234.56", confidence=0.92),
        ]
        items.extend(
            StructuredDataItem(key=keyword, value=f"MOCK-{keyword.upper()}", confidence=0.5)
            for keyword in keyword_list
        )
        return ExtractionPayload(
            fileName=file_name,
            extractedKeywords=keyword_list,
            structuredData=items,
        )


# =============================================================================
# Singleton Factory
# =============================================================================

_ai_service: AIService | None = None


def get_ai_service() -> AIService:
    """Get or create the AI service singleton."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
