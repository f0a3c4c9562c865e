"""Tests for CSV export."""

import csv
import io
from datetime import date
from types import SimpleNamespace

import pytest

from app.integratepdf.services.csv_export import convert_to_csv, export_file_name


class TestExportFileName:
    def test_date_suffix(self):
        assert (
            export_file_name("invoice.pdf", today=date(2024, 5, 1))
            == "invoice_extracted_data_2024-05-01.csv"
        )

    def test_unsafe_characters_replaced(self):
        assert (
            export_file_name("Q1 report (final).pdf", today=date(2024, 5, 1))
            == "Q1_report__final__extracted_data_2024-05-01.csv"
        )


class TestConvertToCSV:
    """Tests for CSV rendering."""

    def test_header_and_rows(self):
        fields = [
            SimpleNamespace(field_key="Vendor", field_value='Acme, "Intl"'),
            SimpleNamespace(field_key="Notes", field_value=None),
        ]
        export = convert_to_csv(fields, "invoice.pdf", today=date(2024, 5, 1))

        assert export.media_type == "text/csv"
        assert export.filename == "invoice_extracted_data_2024-05-01.csv"
        rows = list(csv.reader(io.StringIO(export.content)))
        assert rows == [
            ["Field Name", "Field Value"],
            ["Vendor", 'Acme, "Intl"'],
            ["Notes", ""],
        ]

    def test_empty_fields(self):
        with pytest.raises(ValueError, match="No data to export"):
            convert_to_csv([], "invoice.pdf")
