"""
CSV export of extracted fields.
"""

import csv
import io
import re
from dataclasses import dataclass
from datetime import date
from pathlib import PurePath

from ..models_db import ExtractedField


@dataclass
class CSVExport:
    content: str
    filename: str
    media_type: str = "text/csv"


def export_file_name(document_name: str, today: date | None = None) -> str:
    """``{stem}_extracted_data_{YYYY-MM-DD}.csv`` with unsafe characters replaced."""
    stem = PurePath(document_name).stem or "document"
    stem = re.sub(r"[^a-zA-Z0-9_-]", "_", stem)
    return f"{stem}_extracted_data_{(today or date.today()).isoformat()}.csv"


def convert_to_csv(
    fields: list[ExtractedField], document_name: str, today: date | None = None
) -> CSVExport:
    """
    Render fields as a two-column CSV.

    Raises:
        ValueError: If there are no fields.
    """
    if not fields:
        raise ValueError("No data to export")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Field Name", "Field Value"])
    for item in fields:
        writer.writerow([item.field_key, item.field_value or ""])

    return CSVExport(content=buffer.getvalue(), filename=export_file_name(document_name, today))
