"""
Services package for the IntegratePDF application.

Contains:
- file_validation: Upload checks (name, size, type, PDF signature)
- storage_service: Blob storage for uploaded files
- pdf_service: PDF to image conversion utilities
- ai: Structured extraction through an OpenAI-compatible API
- extraction_worker: Document status transitions and field persistence
- encryption: Encryption of integration secrets
- integrations: Notion and Google Sheets pushers
- push_service: Push dispatch and history
- rate_limit: Per-client request throttling
- identity_webhook: User provisioning from identity provider events
- csv_export: CSV download of extracted fields
"""

from .ai import AIService
from .pdf_service import PDFService

__all__ = ["PDFService", "AIService"]
