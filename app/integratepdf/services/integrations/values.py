"""
Parsing of extracted text values into typed destination values.
"""

import re
from datetime import datetime
from typing import Any

from dateutil import parser as date_parser
from price_parser import Price


def parse_number(value: Any) -> float | None:
    """
    Parse a number or currency string to float using price-parser.

    Handles "$1,234.56", "€1.234,56", "1000 USD", "1234". Returns None when
    no number can be found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    price = Price.fromstring(value)
    if price.amount_float is not None:
        return price.amount_float

    cleaned = re.sub(r"[^\d.\-]", "", value)
    try:
        return float(cleaned) if cleaned else None
    except ValueError:
        return None


def parse_date(value: Any) -> str | None:
    """Parse a date in any common format to YYYY-MM-DD, or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")

    value = str(value).strip()
    if not value:
        return None

    if re.match(r"^\d{4}-\d{2}-\d{2}$", value):
        return value

    try:
        return date_parser.parse(value).strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        return None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "yes", "y", "1", "checked")


def format_field_key_as_header(field_key: str) -> str:
    """``invoice_number`` -> ``Invoice Number``."""
    return " ".join(word.capitalize() for word in field_key.split("_"))
