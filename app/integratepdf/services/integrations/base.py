"""
Shared types for integration pushers.

Every destination implements the Pusher interface; provider failures are
reported as IntegrationError with a code, user-facing suggestions and a
retryable flag.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx


@dataclass
class ExtractedFieldData:
    """Field as handed to a pusher."""

    field_key: str
    field_value: str | None
    confidence: float | None = None


@dataclass
class PushResult:
    """
    Outcome of a successful push.

    Attributes:
        external_id: Identifier of the created record in the destination.
        raw: Provider response details returned to the caller.
        config_updates: Config values to persist (e.g. refreshed tokens).
    """

    external_id: str
    raw: dict[str, Any] = field(default_factory=dict)
    config_updates: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    details: dict[str, Any] | None = None


class IntegrationError(Exception):
    """Raised when a destination rejects a request or cannot be reached."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Any = None,
        suggestions: list[str] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        self.retryable = retryable

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "retryable": self.retryable,
        }


class IntegrationNotImplementedError(IntegrationError):
    """Raised for integration types that are declared but not supported yet."""

    def __init__(self, display_name: str):
        super().__init__(
            code=f"{display_name.upper()}_NOT_IMPLEMENTED",
            message=f"{display_name} integration not yet implemented",
            suggestions=["Use the Notion or Google Sheets integration for now"],
            retryable=False,
        )


class IntegrationConfigError(IntegrationError):
    """Raised when an integration's config is missing required values."""

    def __init__(self, message: str):
        super().__init__(code="INVALID_CONFIG", message=message, retryable=False)


# =============================================================================
# HTTP Error Classification
# =============================================================================

_PROVIDER_MESSAGES: dict[int, tuple[str, str, bool]] = {
    400: ("BAD_REQUEST", "Invalid request to {name} API", False),
    401: ("UNAUTHORIZED", "Authentication failed with {name}", False),
    403: ("FORBIDDEN", "Permission denied to access {name} resource", False),
    404: ("NOT_FOUND", "{name} resource not found", False),
    409: ("CONFLICT", "Conflict with existing {name} data", True),
    429: ("RATE_LIMITED", "Rate limit exceeded for {name} API", True),
}

_SUGGESTIONS: dict[str, dict[str, list[str]]] = {
    "notion": {
        "BAD_REQUEST": [
            "Check that all required fields are provided",
            "Verify that field values match the expected data types",
            "Ensure database ID is correctly formatted",
        ],
        "UNAUTHORIZED": [
            'Verify your API key is correct and starts with "secret_" or "ntn_"',
            "Check that your integration is properly configured in Notion",
        ],
        "FORBIDDEN": [
            "Share the database with your integration in Notion",
            "Check that your integration has the required permissions",
        ],
        "NOT_FOUND": [
            "Check that the database ID is correct",
            "Ensure the database is shared with your integration",
        ],
    },
    "google_sheets": {
        "UNAUTHORIZED": [
            "Reconnect your Google account",
            "Check that the OAuth consent has not been revoked",
        ],
        "FORBIDDEN": [
            "Make sure the connected account can edit the spreadsheet",
        ],
        "NOT_FOUND": [
            "Check that the spreadsheet ID is correct",
            "Verify the spreadsheet has not been deleted",
        ],
    },
}

_DEFAULT_SUGGESTIONS = {
    "CONFLICT": ["Check for duplicate entries", "Review the data being inserted"],
    "RATE_LIMITED": ["Wait before retrying the request", "Reduce the frequency of pushes"],
    "SERVER_ERROR": ["Try again in a few moments", "Check the provider status page"],
}


def classify_http_error(
    provider: str, display_name: str, status_code: int, message: str | None
) -> IntegrationError:
    """Build an IntegrationError from a provider HTTP status."""
    prefix = provider.upper()
    if status_code in _PROVIDER_MESSAGES:
        suffix, template, retryable = _PROVIDER_MESSAGES[status_code]
        text = template.format(name=display_name)
    elif status_code >= 500:
        suffix, text, retryable = "SERVER_ERROR", f"{display_name} server error", True
    else:
        suffix, text, retryable = (
            "UNKNOWN_ERROR",
            f"{display_name} API error: {status_code}",
            False,
        )
    suggestions = _SUGGESTIONS.get(provider, {}).get(suffix) or _DEFAULT_SUGGESTIONS.get(
        suffix, []
    )
    return IntegrationError(
        code=f"{prefix}_{suffix}",
        message=text,
        details=message,
        suggestions=suggestions,
        retryable=retryable,
    )


def network_error(exc: httpx.HTTPError) -> IntegrationError:
    """Wrap a transport failure."""
    if isinstance(exc, httpx.TimeoutException):
        return IntegrationError(
            code="REQUEST_TIMEOUT",
            message="Request timed out",
            details=str(exc),
            suggestions=["Try again in a few moments"],
            retryable=True,
        )
    return IntegrationError(
        code="NETWORK_ERROR",
        message="Network connection failed",
        details=str(exc),
        suggestions=["Check connectivity to the provider", "Try again in a few moments"],
        retryable=True,
    )


def invalid_response_error(provider: str, display_name: str, details: str) -> IntegrationError:
    """A provider answered successfully but not with the payload we expect."""
    return IntegrationError(
        code=f"{provider.upper()}_INVALID_RESPONSE",
        message=f"Unexpected response from {display_name}",
        details=details,
        suggestions=["Try again in a few moments", "Check the provider status page"],
        retryable=True,
    )


def decode_response(provider: str, display_name: str, response: httpx.Response) -> dict:
    """JSON object body of a successful response."""
    try:
        body = response.json()
    except ValueError as e:
        content_type = response.headers.get("content-type", "unknown content type")
        raise invalid_response_error(
            provider, display_name, f"body is not JSON ({content_type})"
        ) from e
    if not isinstance(body, dict):
        raise invalid_response_error(provider, display_name, "body is not a JSON object")
    return body


def require_key(provider: str, display_name: str, data: dict, key: str) -> Any:
    """``data[key]``, or an invalid-response error when it is missing or empty."""
    value = data.get(key)
    if not value:
        raise invalid_response_error(provider, display_name, f"missing '{key}'")
    return value


def response_error_message(response: httpx.Response) -> str:
    """Best-effort error text from a provider response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or str(error)
        return body.get("message") or (str(error) if error else response.reason_phrase)
    return response.reason_phrase


# =============================================================================
# Pusher Interface
# =============================================================================


class Pusher(ABC):
    """Capability interface implemented by each destination."""

    display_name: str = ""

    @abstractmethod
    async def push(
        self,
        fields: list[ExtractedFieldData],
        mapping: dict[str, str],
        config: dict[str, Any],
        *,
        document_name: str,
    ) -> PushResult:
        """
        Create one record from the fields in the destination.

        Args:
            fields: Extracted fields to push.
            mapping: field_key -> destination column/property name. May be empty.
            config: Integration config with secrets already decrypted.
            document_name: Source document's file name.

        Raises:
            IntegrationError: On any failure.
        """

    @abstractmethod
    async def test_connection(self, config: dict[str, Any]) -> ConnectionTestResult:
        """Check the credentials in config without writing anything."""


class UnimplementedPusher(Pusher):
    """Placeholder for declared but unsupported destinations."""

    def __init__(self, display_name: str):
        self.display_name = display_name

    async def push(self, fields, mapping, config, *, document_name):
        raise IntegrationNotImplementedError(self.display_name)

    async def test_connection(self, config):
        raise IntegrationNotImplementedError(self.display_name)
