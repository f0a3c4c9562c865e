"""
Routers package for FastAPI endpoints.

Organized by domain:
- upload: Document upload
- documents: Document listing, status, deletion and CSV export
- extraction: Extraction trigger and extracted field review
- integrations: Integration CRUD, connection tests and push
- google_sheets: Google Sheets OAuth flow
- webhooks: Identity provider webhooks
- users: Profile and usage
"""

from . import documents, extraction, google_sheets, integrations, upload, users, webhooks

__all__ = [
    "documents",
    "extraction",
    "google_sheets",
    "integrations",
    "upload",
    "users",
    "webhooks",
]
