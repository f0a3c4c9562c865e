"""
Notion integration.

Handles:
- Notion REST API calls (database schema, page creation, token check)
- Matching extracted fields to database properties
- Formatting values for each Notion property type
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx

from .base import (
    ConnectionTestResult,
    ExtractedFieldData,
    IntegrationConfigError,
    IntegrationError,
    Pusher,
    PushResult,
    classify_http_error,
    decode_response,
    network_error,
    require_key,
    response_error_message,
)
from .values import parse_bool, parse_date, parse_number

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# Property types Notion computes itself or that need ids we do not have
SKIPPED_PROPERTY_TYPES = {
    "people",
    "files",
    "relation",
    "formula",
    "rollup",
    "created_time",
    "last_edited_time",
    "created_by",
    "last_edited_by",
    "unique_id",
}

# Property name -> field key fragments that map onto it
COMMON_MAPPINGS: dict[str, list[str]] = {
    "amount": ["total amount", "amount", "price", "cost", "sum", "value"],
    "date": ["receipt date", "date", "created", "timestamp"],
    "title": ["document name", "title", "name", "filename"],
    "description": ["description", "notes", "details", "memo"],
    "status": ["status", "state", "condition", "payment status"],
    "category": ["category", "type", "class", "document type"],
    "tags": ["tags", "labels", "keywords"],
}

STATUS_SYNONYMS: dict[str, list[str]] = {
    "paid": ["paid", "complete", "completed", "done", "finished", "success"],
    "pending": ["pending", "in progress", "processing", "waiting"],
    "failed": ["failed", "error", "cancelled", "rejected"],
    "draft": ["draft", "new", "created"],
    "active": ["active", "open", "current"],
    "inactive": ["inactive", "closed", "archived"],
}


@dataclass
class NotionProperty:
    id: str
    name: str
    type: str
    options: list[str] = field(default_factory=list)


@dataclass
class NotionDatabase:
    id: str
    title: str
    url: str | None
    properties: dict[str, NotionProperty]


# =============================================================================
# API Client
# =============================================================================


class NotionClient:
    """Thin async client for the endpoints IntegratePDF uses."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=NOTION_API_URL,
                headers=headers,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise network_error(e) from e

        if response.is_error:
            raise classify_http_error(
                "notion", "Notion", response.status_code, response_error_message(response)
            )
        return decode_response("notion", "Notion", response)

    async def get_current_user(self) -> dict:
        return await self._request("GET", "/users/me")

    async def get_database(self, database_id: str) -> NotionDatabase:
        data = await self._request("GET", f"/databases/{database_id}")
        title_parts = data.get("title") or []
        title = title_parts[0].get("plain_text") if title_parts else None
        return NotionDatabase(
            id=require_key("notion", "Notion", data, "id"),
            title=title or "Untitled Database",
            url=data.get("url"),
            properties=parse_properties(data.get("properties", {})),
        )

    async def create_page(self, database_id: str, properties: dict[str, Any]) -> dict:
        payload = {"parent": {"database_id": database_id}, "properties": properties}
        page = await self._request("POST", "/pages", json=payload)
        logger.info("Notion page created: %s", page.get("id"))
        return page


# =============================================================================
# Property Handling
# =============================================================================


def parse_properties(properties: dict[str, Any]) -> dict[str, NotionProperty]:
    """Reduce Notion's property schema to name, type and option names."""
    parsed: dict[str, NotionProperty] = {}
    for name, prop in properties.items():
        prop_type = prop.get("type", "")
        options = [
            option["name"]
            for option in (prop.get(prop_type) or {}).get("options", [])
            if prop_type in ("select", "multi_select", "status")
        ]
        parsed[name] = NotionProperty(id=prop.get("id", ""), name=name, type=prop_type, options=options)
    return parsed


def _normalize(text: str) -> str:
    return "".join(ch for ch in text.lower() if ch.isalnum())


def find_matching_property(field_key: str, property_names: list[str]) -> str | None:
    """
    Pick the database property an unmapped field most likely belongs to.

    Tries, in order: case-insensitive exact name, common synonyms,
    alphanumeric-normalized equality, then normalized containment.
    """
    key_lower = field_key.lower()
    for name in property_names:
        if name.lower() == key_lower:
            return name

    lower_names = {name.lower(): name for name in property_names}
    for property_name, variants in COMMON_MAPPINGS.items():
        if property_name not in lower_names:
            continue
        if any(variant in key_lower or key_lower in variant for variant in variants):
            return lower_names[property_name]

    normalized_key = _normalize(field_key)
    for name in property_names:
        if _normalize(name) == normalized_key:
            return name

    if normalized_key:
        for name in property_names:
            normalized_name = _normalize(name)
            if normalized_name and (
                normalized_name in normalized_key or normalized_key in normalized_name
            ):
                return name
    return None


def find_matching_option(value: str, options: list[str]) -> str | None:
    normalized = value.strip().lower()
    if not normalized:
        return None
    for option in options:
        if option.lower() == normalized:
            return option
    for option in options:
        option_lower = option.lower()
        if option_lower in normalized or normalized in option_lower:
            return option
    return None


def find_status_fallback(value: str, options: list[str]) -> str | None:
    """Map e.g. "Completed" onto a "Done" status option."""
    normalized = value.strip().lower()
    for keywords in STATUS_SYNONYMS.values():
        if not any(keyword in normalized for keyword in keywords):
            continue
        for option in options:
            if any(keyword in option.lower() for keyword in keywords):
                return option
    return None


def _text(content: str) -> list[dict]:
    return [{"text": {"content": content[:2000]}}]


def format_value_for_property(value: str | None, prop: NotionProperty) -> dict | None:
    """
    Convert an extracted string into a Notion property value.

    Returns None when the value cannot be represented, or the property is
    read-only or needs ids we do not have.
    """
    if prop.type in SKIPPED_PROPERTY_TYPES:
        return None
    value = value or ""

    if prop.type == "title":
        return {"title": _text(value)}

    if prop.type == "rich_text":
        return {"rich_text": _text(value)}

    if prop.type == "number":
        number = parse_number(value)
        return {"number": number} if number is not None else None

    if prop.type == "select":
        if not value:
            return None
        if prop.options:
            option = find_matching_option(value, prop.options)
            if option is None:
                logger.warning(
                    "Select option %r not found for %r, using %r",
                    value,
                    prop.name,
                    prop.options[0],
                )
                option = prop.options[0]
            return {"select": {"name": option}}
        return {"select": {"name": value}}

    if prop.type == "multi_select":
        if not value:
            return None
        values = [v.strip() for v in value.split(",") if v.strip()]
        if prop.options:
            names = [opt for opt in (find_matching_option(v, prop.options) for v in values) if opt]
        else:
            names = values
        return {"multi_select": [{"name": name} for name in names]}

    if prop.type == "status":
        if not value:
            return None
        if prop.options:
            option = (
                find_matching_option(value, prop.options)
                or find_status_fallback(value, prop.options)
                or prop.options[0]
            )
            return {"status": {"name": option}}
        return {"status": {"name": value}}

    if prop.type == "date":
        parsed = parse_date(value)
        return {"date": {"start": parsed}} if parsed else None

    if prop.type == "checkbox":
        return {"checkbox": parse_bool(value)}

    if prop.type in ("url", "email", "phone_number"):
        return {prop.type: value} if value else None

    logger.warning("Unknown Notion property type %r, defaulting to rich_text", prop.type)
    return {"rich_text": _text(value)}


def build_page_properties(
    fields: list[ExtractedFieldData],
    mapping: dict[str, str],
    database: NotionDatabase,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Map fields onto database properties.

    Explicitly mapped fields always win; auto-matched fields never reuse a
    property already taken. A default title is added when none was set.
    """
    property_names = list(database.properties)
    properties: dict[str, Any] = {}
    used: set[str] = set()

    for item in fields:
        property_name = mapping.get(item.field_key)
        if not property_name:
            property_name = find_matching_property(item.field_key, property_names)
            if property_name is None or property_name in used:
                continue
        used.add(property_name)

        prop = database.properties.get(property_name)
        if prop is None:
            logger.warning("Mapped property %r does not exist in database", property_name)
            continue

        formatted = format_value_for_property(item.field_value, prop)
        if formatted is not None:
            properties[property_name] = formatted

    title_property = next(
        (name for name, prop in database.properties.items() if prop.type == "title"), None
    )
    if title_property and title_property not in properties:
        stamp = (today or date.today()).isoformat()
        properties[title_property] = {"title": _text(f"Document {stamp}")}

    return properties


# =============================================================================
# Pusher
# =============================================================================


class NotionPusher(Pusher):
    """Creates one page per push in the configured database."""

    display_name = "Notion"

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self.transport = transport

    def _client(self, config: dict[str, Any]) -> NotionClient:
        api_key = config.get("api_key")
        if not api_key:
            raise IntegrationConfigError("Notion API key is required")
        return NotionClient(api_key, timeout=self.timeout, transport=self.transport)

    async def push(self, fields, mapping, config, *, document_name):
        database_id = config.get("database_id")
        if not database_id:
            raise IntegrationConfigError("Notion database ID is required")

        client = self._client(config)
        database = await client.get_database(database_id)
        properties = build_page_properties(fields, mapping, database)
        logger.info(
            "Pushing %d field(s) from %s to Notion database %s (%d properties)",
            len(fields),
            document_name,
            database.id,
            len(properties),
        )
        page = await client.create_page(database_id, properties)
        page_id = require_key("notion", "Notion", page, "id")
        return PushResult(
            external_id=page_id,
            raw={"page_id": page_id, "url": page.get("url"), "database": database.title},
        )

    async def describe_database(self, config: dict[str, Any], database_id: str) -> NotionDatabase:
        """Schema of a database, used to build field mappings."""
        return await self._client(config).get_database(database_id)

    async def test_connection(self, config):
        try:
            client = self._client(config)
            user = await client.get_current_user()
            details: dict[str, Any] = {"bot": user.get("name")}
            database_id = config.get("database_id")
            if database_id:
                database = await client.get_database(database_id)
                details.update(
                    database_title=database.title,
                    properties={name: prop.type for name, prop in database.properties.items()},
                )
        except IntegrationError as e:
            return ConnectionTestResult(False, str(e), e.to_dict())
        return ConnectionTestResult(True, "Successfully connected to Notion", details)
