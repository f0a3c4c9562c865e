"""
Pydantic models for the IntegratePDF API.

Defines request/response types for every endpoint plus the structured
output contract the AI extraction call must satisfy.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models_db import DocumentStatus, IntegrationType, SubscriptionTier


# =============================================================================
# AI Extraction Contract
# =============================================================================


class StructuredDataItem(BaseModel):
    """A single key/value pair returned by the model."""

    key: str = Field(..., min_length=1, description="Field name")
    value: str = Field(..., description="Field value as text")
    confidence: float = Field(..., description="Model confidence between 0 and 1")

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> Any:
        """Numbers and booleans occasionally come back unquoted."""
        if isinstance(v, (int, float, bool)):
            return str(v)
        return v

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


class ExtractionPayload(BaseModel):
    """
    Structured output of one extraction call.

    Attributes:
        fileName: Name of the processed file as echoed by the model.
        extractedKeywords: Keywords the model considered while extracting.
        structuredData: Extracted key/value/confidence triples.
    """

    fileName: str
    extractedKeywords: list[str] = Field(default_factory=list)
    structuredData: list[StructuredDataItem] = Field(default_factory=list)


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""

    status: str
    message: str
    version: str = "1.0.0"


# =============================================================================
# Documents
# =============================================================================


class DocumentResponse(BaseModel):
    """Document row as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    filename: str
    file_size: int
    file_type: str
    storage_path: str
    keywords: str | None = None
    processing_status: DocumentStatus
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    confidence_score: float | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class UploadResponse(BaseModel):
    """Response for a successful upload."""

    document: DocumentResponse
    message: str = "Document uploaded successfully"
    warnings: list[str] = Field(default_factory=list)


class ExtractRequest(BaseModel):
    """Body of the extraction trigger. Keywords are comma separated."""

    keywords: str | None = None


class ExtractResponse(BaseModel):
    """Result of triggering extraction."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    document_id: uuid.UUID = Field(..., alias="documentId")
    status: DocumentStatus
    message: str | None = None
    extracted_data: ExtractionPayload | None = Field(default=None, alias="extractedData")


class DocumentStatusResponse(BaseModel):
    """Polling view of a document's processing state."""

    id: uuid.UUID
    filename: str
    processing_status: DocumentStatus
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processing_duration_seconds: int | None = None
    confidence_score: float | None = None
    error_message: str | None = None
    extracted_fields_count: int = 0
    created_at: datetime
    updated_at: datetime


class ExtractedFieldResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    document_id: uuid.UUID
    field_key: str
    field_value: str | None = None
    data_type: str
    confidence: float | None = None
    extraction_method: str
    is_corrected: bool
    original_value: str | None = None
    created_at: datetime
    updated_at: datetime


class ExtractionStatistics(BaseModel):
    total_fields: int
    average_confidence: float
    corrected_fields: int
    correction_rate: int


class ExtractedDataResponse(BaseModel):
    document: DocumentResponse
    extracted_data: list[ExtractedFieldResponse]
    statistics: ExtractionStatistics


class UpdateFieldRequest(BaseModel):
    """Manual correction of one extracted field."""

    field_id: str | None = None
    field_value: str | None = None
    is_corrected: bool = True
    original_value: str | None = None


class UpdateFieldResponse(BaseModel):
    success: bool
    message: str
    updated_field: ExtractedFieldResponse


# =============================================================================
# Integrations
# =============================================================================


class IntegrationCreateRequest(BaseModel):
    """Create a new integration. The name defaults to the type."""

    type: IntegrationType | None = None
    name: str | None = Field(default=None, max_length=255)
    config: dict[str, Any] | None = None


class IntegrationUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    config: dict[str, Any] | None = None
    is_active: bool | None = None


class IntegrationResponse(BaseModel):
    """Integration as returned by the API. Secret config values are masked."""

    id: uuid.UUID
    integration_type: IntegrationType
    integration_name: str
    config: dict[str, Any]
    is_active: bool
    last_sync: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ConnectionTestRequest(BaseModel):
    type: IntegrationType
    config: dict[str, Any] = Field(default_factory=dict)


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    details: dict[str, Any] | None = None


class PushFieldData(BaseModel):
    """A field as sent by the client when pushing."""

    field_key: str = Field(..., min_length=1)
    field_value: str | None = None
    confidence: float | None = None

    @field_validator("field_value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> Any:
        if isinstance(v, (int, float, bool)):
            return str(v)
        return v


class PushRequest(BaseModel):
    """
    Push extracted data to an integration.

    When `data` is omitted the document's stored fields are pushed.
    """

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId")
    data: list[PushFieldData] | None = None
    mapping: dict[str, str] | None = None


class PushResponse(BaseModel):
    success: bool
    integration_id: uuid.UUID | None = None
    external_id: str | None = None
    pushed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None


class NotionDatabaseRequest(BaseModel):
    """Either a raw API key or a saved Notion integration to read the key from."""

    api_key: str | None = None
    integration_id: str | None = None


class NotionPropertyResponse(BaseModel):
    id: str
    name: str
    type: str
    options: list[str] = Field(default_factory=list)


class NotionDatabaseResponse(BaseModel):
    """Database schema used to build a field mapping."""

    id: str
    title: str
    url: str | None = None
    properties: dict[str, NotionPropertyResponse]


class SpreadsheetCreateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)


class SpreadsheetResponse(BaseModel):
    spreadsheet_id: str
    title: str | None = None
    url: str
    sheets: list[str] = Field(default_factory=list)


# =============================================================================
# Users
# =============================================================================


class UserProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    external_id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    subscription_tier: SubscriptionTier
    documents_processed: int
    monthly_limit: int
    created_at: datetime


class UserProfileUpdateRequest(BaseModel):
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)


class UsageResponse(BaseModel):
    subscription_tier: SubscriptionTier
    documents_processed: int
    monthly_limit: int
    remaining: int
    usage_percentage: int


class WebhookResponse(BaseModel):
    success: bool
    event: str
    message: str
