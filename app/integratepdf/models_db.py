"""
SQLAlchemy database models for IntegratePDF.

This module defines the ORM models for persisting users, uploaded documents,
extracted fields, integration configurations and push history.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class DocumentStatus(enum.Enum):
    """Status of a document in the extraction pipeline."""

    UPLOADED = "uploaded"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class IntegrationType(enum.Enum):
    """Destinations extracted data can be pushed to."""

    NOTION = "notion"
    GOOGLE_SHEETS = "google_sheets"
    AIRTABLE = "airtable"
    QUICKBOOKS = "quickbooks"


class SubscriptionTier(enum.Enum):
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class User(Base):
    """
    Internal user row, keyed by the identity provider's user id.

    Created by the identity webhook (or lazily on first authenticated
    request) and carries the monthly document quota.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    external_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Identity provider user id",
    )
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        Enum(SubscriptionTier, values_callable=_enum_values, native_enum=False),
        default=SubscriptionTier.FREE,
        nullable=False,
    )
    documents_processed: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    monthly_limit: Mapped[int] = mapped_column(
        Integer,
        default=10,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    documents: Mapped[list["Document"]] = relationship(
        "Document",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    integrations: Mapped[list["Integration"]] = relationship(
        "Integration",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    push_history: Mapped[list["PushHistory"]] = relationship(
        "PushHistory",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, external_id='{self.external_id}')>"


class Document(Base):
    """
    An uploaded PDF and its extraction lifecycle.

    `processing_status` is the only coordination point between the upload
    handler, the extraction trigger and the status endpoint.
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    filename: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
    )
    file_size: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    file_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="application/pdf",
    )
    storage_path: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
    )
    keywords: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Free-text keywords captured at upload",
    )
    processing_status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, values_callable=_enum_values, native_enum=False),
        default=DocumentStatus.PENDING,
        nullable=False,
        index=True,
    )
    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    processing_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    confidence_score: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Mean confidence of the extracted fields",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    user: Mapped[User] = relationship(
        "User",
        back_populates="documents",
    )
    extracted_fields: Mapped[list["ExtractedField"]] = relationship(
        "ExtractedField",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="ExtractedField.created_at",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}', status={self.processing_status.value})>"


class ExtractedField(Base):
    """
    One key/value pair produced by AI extraction.

    Users may correct the value afterwards; `is_corrected` flags that and
    `original_value` keeps the prior value when the caller supplies it.
    """

    __tablename__ = "extracted_data"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    field_value: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    data_type: Mapped[str] = mapped_column(
        String(50),
        default="string",
        nullable=False,
    )
    confidence: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )
    extraction_method: Mapped[str] = mapped_column(
        String(50),
        default="gemini",
        nullable=False,
    )
    is_corrected: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    original_value: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    document: Mapped[Document] = relationship(
        "Document",
        back_populates="extracted_fields",
    )

    def __repr__(self) -> str:
        return f"<ExtractedField(id={self.id}, key='{self.field_key}', corrected={self.is_corrected})>"


class Integration(Base):
    """
    A user's configured destination.

    `config` holds provider settings; secret values inside it are stored
    encrypted.
    """

    __tablename__ = "integrations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    integration_type: Mapped[IntegrationType] = mapped_column(
        Enum(IntegrationType, values_callable=_enum_values, native_enum=False),
        nullable=False,
    )
    integration_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    config: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    last_sync: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    user: Mapped[User] = relationship(
        "User",
        back_populates="integrations",
    )

    def __repr__(self) -> str:
        return f"<Integration(id={self.id}, type={self.integration_type.value}, name='{self.integration_name}')>"


class PushHistory(Base):
    """Append-only record of every push attempt, successful or not."""

    __tablename__ = "push_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    integration_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("integrations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    success: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
    )
    external_id: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
        comment="Identifier of the created record in the destination",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    pushed_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PushHistory(id={self.id}, success={self.success}, external_id={self.external_id})>"
