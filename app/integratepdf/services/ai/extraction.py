"""
Structured data extraction from PDF documents.

Sends the document (as a file part, or as rendered page images) to an
OpenAI-compatible chat completion endpoint with a strict JSON schema and
validates the reply against ExtractionPayload.
"""

import base64
import json
import logging
from typing import Any

from pydantic import ValidationError

from ...models import ExtractionPayload
from .exceptions import AIServiceError

logger = logging.getLogger(__name__)


# =============================================================================
# Response Schema
# =============================================================================

EXTRACTION_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "fileName": {
            "type": "string",
            "description": "The name of the source file, as provided in the prompt.",
        },
        "extractedKeywords": {
            "type": "array",
            "description": (
                "The keywords that were used for the search. "
                "Empty if no keywords were provided."
            ),
            "items": {"type": "string"},
        },
        "structuredData": {
            "type": "array",
            "description": "The structured data extracted from the document, as key-value pairs.",
            "items": {
                "type": "object",
                "properties": {
                    "key": {
                        "type": "string",
                        "description": (
                            "The label for the extracted piece of information "
                            "(e.g., 'Invoice Number', 'Total Amount', 'Client Name')."
                        ),
                    },
                    "value": {
                        "type": "string",
                        "description": "The corresponding value for the key.",
                    },
                    "confidence": {
                        "type": "number",
                        "description": "Confidence score between 0 and 1 for this extraction.",
                    },
                },
                "required": ["key", "value", "confidence"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["fileName", "extractedKeywords", "structuredData"],
    "additionalProperties": False,
}


# =============================================================================
# Extraction System Prompt
# =============================================================================

EXTRACTION_SYSTEM_PROMPT = """You are an advanced data extraction engine for IntegratePDF.
Your task is to meticulously analyze the provided document and extract structured information from it.

## Rules:
1. Only report values that are present in the document. DO NOT HALLUCINATE.
2. Keep dates, currencies and numbers as they appear in the document.
3. For each extracted data point, provide a confidence score between 0 and 1.
4. Return a JSON object that adheres exactly to the provided schema."""


# =============================================================================
# Helper Functions
# =============================================================================


def parse_keywords(keywords: str | None) -> list[str]:
    """Split a comma separated keyword string, dropping blanks."""
    if not keywords:
        return []
    return [k.strip() for k in keywords.split(",") if k.strip()]


def build_extraction_prompt(file_name: str, keywords: str | None = None) -> str:
    """
    Build the user prompt for one document.

    Keywords, when given, are prioritised; otherwise the model is asked for a
    comprehensive extraction of every salient key/value pair.
    """
    keyword_list = parse_keywords(keywords)
    keyword_text = ", ".join(keyword_list) if keyword_list else "None"

    lines = [
        "The document to analyze is provided in this request.",
        "",
        f'The user has specified the following keywords for targeted extraction: "{keyword_text}".',
    ]
    if keyword_list:
        lines.append(
            "Prioritize finding data points corresponding to these keywords."
        )
    else:
        lines.append(
            "No keywords were provided: perform a comprehensive extraction of all salient "
            "key-value pairs you can identify in the document (e.g., invoice numbers, dates, "
            "names, addresses, line items, totals)."
        )
    lines.extend(
        [
            "",
            f'- The "fileName" field in your JSON response must be exactly: "{file_name}".',
            '- The "extractedKeywords" field must list the keywords above '
            "(an empty array if there are none).",
            '- The "structuredData" field must contain the key-value pairs you extract.',
        ]
    )
    return "\n".join(lines)


def build_file_content(file_name: str, pdf_bytes: bytes) -> dict[str, Any]:
    """Inline the PDF as a base64 file part."""
    encoded = base64.b64encode(pdf_bytes).decode("utf-8")
    return {
        "type": "file",
        "file": {
            "filename": file_name,
            "file_data": f"data:application/pdf;base64,{encoded}",
        },
    }


def build_image_content(page_images: list[bytes]) -> list[dict[str, Any]]:
    """Inline rendered PNG pages as image parts."""
    return [
        {
            "type": "image_url",
            "image_url": {
                "url": f"data:image/png;base64,{base64.b64encode(png).decode('utf-8')}",
                "detail": "high",
            },
        }
        for png in page_images
    ]


def parse_extraction_response(content: str | None) -> ExtractionPayload:
    """
    Decode and validate the model's JSON reply.

    Raises:
        AIServiceError: If the reply is empty, not JSON, or does not match the schema.
    """
    if not content:
        raise AIServiceError("Empty response from AI service")

    try:
        response_data = json.loads(content.strip())
    except json.JSONDecodeError as e:
        logger.error("Failed to parse extraction response: %s", content[:500])
        raise AIServiceError(f"Invalid JSON in extraction response: {e}") from e

    try:
        return ExtractionPayload.model_validate(response_data)
    except ValidationError as e:
        logger.error("Extraction response does not match schema: %s", e)
        raise AIServiceError(f"Extraction response does not match schema: {e}") from e


# =============================================================================
# Main Extraction Function
# =============================================================================


async def extract_structured_data(
    file_name: str,
    pdf_bytes: bytes,
    keywords: str | None,
    client: Any,  # AsyncOpenAI client
    model: str,
    page_images: list[bytes] | None = None,
) -> ExtractionPayload:
    """
    Run one extraction request.

    Args:
        file_name: Original file name, echoed back by the model.
        pdf_bytes: Raw PDF content.
        keywords: Optional comma separated keywords.
        client: OpenAI-compatible async client.
        model: Model name.
        page_images: Rendered PNG pages; when given they replace the file part.

    Returns:
        Validated ExtractionPayload.
    """
    content: list[dict[str, Any]] = [
        {"type": "text", "text": build_extraction_prompt(file_name, keywords)},
    ]
    if page_images:
        content.extend(build_image_content(page_images))
    else:
        content.append(build_file_content(file_name, pdf_bytes))

    logger.info(
        "Requesting extraction for %s (model=%s, %s input, keywords=%s)",
        file_name,
        model,
        "image" if page_images else "file",
        parse_keywords(keywords) or "none",
    )

    try:
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "pdf_extraction",
                    "strict": True,
                    "schema": EXTRACTION_RESPONSE_SCHEMA,
                },
            },
        )
    except Exception as e:
        logger.exception("Extraction request failed")
        raise AIServiceError(f"Failed to process document: {e}") from e

    if not response.choices:
        raise AIServiceError("Empty response from AI service")

    payload = parse_extraction_response(response.choices[0].message.content)
    logger.info(
        "Extracted %d field(s) from %s", len(payload.structuredData), file_name
    )
    return payload
