"""
Google Sheets integration.

Handles:
- Sheets v4 REST calls with an OAuth access token
- Refreshing expired access tokens
- Appending one row per push, with a header row on empty sheets
"""

import logging
import time
from datetime import date
from typing import Any
from urllib.parse import quote

import httpx

from ...config import get_settings
from .base import (
    ConnectionTestResult,
    IntegrationConfigError,
    IntegrationError,
    Pusher,
    PushResult,
    classify_http_error,
    decode_response,
    invalid_response_error,
    network_error,
    require_key,
    response_error_message,
)
from .values import format_field_key_as_header

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh this many seconds before the recorded expiry
TOKEN_EXPIRY_MARGIN = 60


def _expiry_seconds(expires_at: Any) -> float:
    try:
        return float(expires_at)
    except (TypeError, ValueError) as e:
        raise IntegrationConfigError(f"Invalid token expiry: {expires_at!r}") from e


def quote_sheet_range(sheet_title: str, cells: str) -> str:
    """A1 range for a sheet, quoting the title (``'My Sheet'!A:Z``)."""
    escaped = sheet_title.replace("'", "''")
    return f"'{escaped}'!{cells}"


async def refresh_access_token(
    refresh_token: str,
    client_id: str,
    client_secret: str,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """
    Exchange a refresh token for a new access token.

    Returns:
        Config updates: ``access_token`` and ``expires_at`` (epoch seconds).
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
    except httpx.HTTPError as e:
        raise network_error(e) from e

    if response.is_error:
        raise classify_http_error(
            "google_sheets", "Google Sheets", 401, response_error_message(response)
        )
    data = decode_response("google_sheets", "Google", response)
    access_token = require_key("google_sheets", "Google", data, "access_token")
    try:
        expires_in = int(data.get("expires_in", 3600))
    except (TypeError, ValueError) as e:
        raise invalid_response_error("google_sheets", "Google", "invalid 'expires_in'") from e
    logger.info("Refreshed Google access token")
    return {"access_token": access_token, "expires_at": int(time.time()) + expires_in}


class GoogleSheetsClient:
    """Thin async client for the Sheets v4 endpoints IntegratePDF uses."""

    def __init__(
        self,
        access_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.timeout = timeout
        self.transport = transport

    async def _request(
        self,
        method: str,
        url: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        try:
            async with httpx.AsyncClient(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, url, json=json, params=params)
        except httpx.HTTPError as e:
            raise network_error(e) from e

        if response.is_error:
            raise classify_http_error(
                "google_sheets",
                "Google Sheets",
                response.status_code,
                response_error_message(response),
            )
        return decode_response("google_sheets", "Google Sheets", response)

    async def get_spreadsheet(self, spreadsheet_id: str) -> dict:
        return await self._request(
            "GET",
            f"{SHEETS_API_URL}/{spreadsheet_id}",
            params={"includeGridData": "false"},
        )

    async def create_spreadsheet(self, title: str) -> dict:
        spreadsheet = await self._request(
            "POST", SHEETS_API_URL, json={"properties": {"title": title}}
        )
        logger.info("Created spreadsheet %s", spreadsheet.get("spreadsheetId"))
        return spreadsheet

    async def get_values(self, spreadsheet_id: str, cell_range: str) -> list[list[str]]:
        data = await self._request(
            "GET", f"{SHEETS_API_URL}/{spreadsheet_id}/values/{quote(cell_range, safe='')}"
        )
        return data.get("values", [])

    async def append_values(
        self, spreadsheet_id: str, cell_range: str, values: list[list[str]]
    ) -> dict:
        return await self._request(
            "POST",
            f"{SHEETS_API_URL}/{spreadsheet_id}/values/{quote(cell_range, safe='')}:append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": values},
        )


def list_sheet_titles(spreadsheet: dict) -> list[str]:
    """Titles of the tabs in a spreadsheet resource, skipping malformed entries."""
    titles = []
    for sheet in spreadsheet.get("sheets") or []:
        title = ((sheet or {}).get("properties") or {}).get("title")
        if title:
            titles.append(title)
    return titles


def build_row(fields, mapping: dict[str, str]) -> tuple[list[str], list[str]]:
    """
    Headers and values for one pushed document.

    With a mapping only mapped fields are written under their mapped column
    names; without one every field is written under a title-cased header.
    """
    headers: list[str] = []
    values: list[str] = []
    for item in fields:
        if mapping:
            column = mapping.get(item.field_key)
            if not column:
                continue
        else:
            column = format_field_key_as_header(item.field_key)
        headers.append(column)
        values.append(item.field_value or "")
    return headers, values


class GoogleSheetsPusher(Pusher):
    """Appends one row per push to the configured (or a new) spreadsheet."""

    display_name = "Google Sheets"

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self.transport = transport

    async def authorized_client(self, config: dict[str, Any]) -> tuple[GoogleSheetsClient, dict]:
        """
        Client for the stored tokens, refreshing an expired access token first.

        Returns:
            (client, config updates to persist; empty when nothing was refreshed)
        """
        access_token = config.get("access_token")
        if not access_token:
            raise IntegrationConfigError("Google Sheets access token is required")

        updates: dict[str, Any] = {}
        expires_at = config.get("expires_at")
        refresh_token = config.get("refresh_token")
        if (
            expires_at
            and refresh_token
            and time.time() >= _expiry_seconds(expires_at) - TOKEN_EXPIRY_MARGIN
        ):
            settings = get_settings()
            client_id = config.get("client_id") or settings.google_client_id
            client_secret = config.get("client_secret") or settings.google_client_secret
            if not client_id or not client_secret:
                raise IntegrationConfigError(
                    "Google access token expired and no OAuth client is configured to refresh it"
                )
            updates = await refresh_access_token(
                refresh_token,
                client_id,
                client_secret,
                timeout=self.timeout,
                transport=self.transport,
            )
            access_token = updates["access_token"]

        client = GoogleSheetsClient(access_token, timeout=self.timeout, transport=self.transport)
        return client, updates

    async def push(self, fields, mapping, config, *, document_name):
        client, updates = await self.authorized_client(config)

        spreadsheet_id = config.get("spreadsheet_id")
        if not spreadsheet_id:
            title = f"{document_name or 'IntegratePDF Data'} - {date.today().isoformat()}"
            created = await client.create_spreadsheet(title)
            spreadsheet_id = require_key(
                "google_sheets", "Google Sheets", created, "spreadsheetId"
            )

        spreadsheet = await client.get_spreadsheet(spreadsheet_id)
        sheet_titles = list_sheet_titles(spreadsheet)
        if not sheet_titles:
            raise IntegrationError(
                code="GOOGLE_SHEETS_NOT_FOUND",
                message=f"Spreadsheet {spreadsheet_id} has no sheets",
            )
        sheet_name = config.get("sheet_name")
        target_sheet = sheet_name if sheet_name in sheet_titles else sheet_titles[0]

        headers, values = build_row(fields, mapping)
        existing = await client.get_values(spreadsheet_id, quote_sheet_range(target_sheet, "A:Z"))
        rows = [headers, values] if not existing else [values]

        result = await client.append_values(
            spreadsheet_id, quote_sheet_range(target_sheet, "A:A"), rows
        )
        logger.info(
            "Appended %d row(s) from %s to spreadsheet %s/%s",
            len(rows),
            document_name,
            spreadsheet_id,
            target_sheet,
        )
        return PushResult(
            external_id=f"{spreadsheet_id}:{target_sheet}",
            raw={
                "spreadsheetId": spreadsheet_id,
                "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
                "sheetName": target_sheet,
                "updates": result.get("updates", {}),
            },
            config_updates=updates,
        )

    async def fetch_spreadsheet(
        self, config: dict[str, Any], spreadsheet_id: str
    ) -> tuple[dict, dict]:
        """Spreadsheet resource plus any config updates from a token refresh."""
        client, updates = await self.authorized_client(config)
        return await client.get_spreadsheet(spreadsheet_id), updates

    async def new_spreadsheet(self, config: dict[str, Any], title: str) -> tuple[dict, dict]:
        """Create a spreadsheet; returns it plus any config updates."""
        client, updates = await self.authorized_client(config)
        created = await client.create_spreadsheet(title)
        require_key("google_sheets", "Google Sheets", created, "spreadsheetId")
        return created, updates

    async def test_connection(self, config):
        try:
            client, _ = await self.authorized_client(config)
            spreadsheet_id = config.get("spreadsheet_id")
            if not spreadsheet_id:
                return ConnectionTestResult(
                    True, "Google account connected; a spreadsheet will be created on first push"
                )
            spreadsheet = await client.get_spreadsheet(spreadsheet_id)
        except IntegrationError as e:
            return ConnectionTestResult(False, str(e), e.to_dict())
        return ConnectionTestResult(
            True,
            "Successfully connected to Google Sheets",
            {
                "spreadsheet_title": spreadsheet.get("properties", {}).get("title"),
                "sheets": list_sheet_titles(spreadsheet),
            },
        )
