"""
Integration pushers for external destinations.

- base: Pusher interface, results and error classification
- notion: Notion databases
- google_sheets: Google Sheets spreadsheets
- google_oauth: Google consent flow for Sheets

get_pusher() resolves an integration type to its pusher. Airtable and
QuickBooks are declared but not implemented yet.
"""

from collections.abc import Callable

from ...config import get_settings
from ...models_db import IntegrationType
from .base import (
    ConnectionTestResult,
    ExtractedFieldData,
    IntegrationConfigError,
    IntegrationError,
    IntegrationNotImplementedError,
    Pusher,
    PushResult,
    UnimplementedPusher,
)
from .google_sheets import GoogleSheetsPusher
from .notion import NotionPusher

__all__ = [
    "ConnectionTestResult",
    "ExtractedFieldData",
    "IntegrationConfigError",
    "IntegrationError",
    "IntegrationNotImplementedError",
    "PUSHER_REGISTRY",
    "Pusher",
    "PushResult",
    "get_pusher",
]


PUSHER_REGISTRY: dict[IntegrationType, Callable[[], Pusher]] = {
    IntegrationType.NOTION: lambda: NotionPusher(timeout=get_settings().http_timeout),
    IntegrationType.GOOGLE_SHEETS: lambda: GoogleSheetsPusher(
        timeout=get_settings().http_timeout
    ),
    IntegrationType.AIRTABLE: lambda: UnimplementedPusher("Airtable"),
    IntegrationType.QUICKBOOKS: lambda: UnimplementedPusher("QuickBooks"),
}


def get_pusher(integration_type: IntegrationType | str) -> Pusher:
    """
    Resolve an integration type to its pusher.

    Raises:
        IntegrationError: For unknown types.
    """
    try:
        factory = PUSHER_REGISTRY[IntegrationType(integration_type)]
    except (KeyError, ValueError):
        raise IntegrationError(
            code="UNSUPPORTED_INTEGRATION",
            message=f"Unsupported integration type: {integration_type}",
        )
    return factory()
