"""Tests for upload validation."""

import pytest

from app.integratepdf.services.file_validation import (
    MAX_FILE_SIZE,
    sanitize_file_name,
    validate_file_name,
    validate_file_size,
    validate_file_type,
    validate_upload,
)


class TestValidateFileName:
    """Tests for file name checks."""

    def test_plain_name_is_valid(self):
        result = validate_file_name("invoice-2024.pdf")
        assert result.is_valid
        assert result.warnings == []

    @pytest.mark.parametrize("name", ["../etc/passwd.pdf", "dir/file.pdf", "dir\\file.pdf"])
    def test_path_characters_rejected(self, name):
        result = validate_file_name(name)
        assert not result.is_valid
        assert result.error == "File name contains invalid path characters."

    def test_dangerous_characters_rejected(self):
        result = validate_file_name("bad<name>.pdf")
        assert not result.is_valid
        assert result.error == "File name contains invalid characters."

    def test_overlong_name_rejected(self):
        result = validate_file_name("a" * 252 + ".pdf")
        assert not result.is_valid
        assert "too long" in result.error

    def test_suspicious_extension_only_warns(self):
        result = validate_file_name("payload.exe.pdf")
        assert result.is_valid
        assert result.warnings == ["File name contains suspicious extension: .exe"]


class TestValidateFileSize:
    """Tests for size checks."""

    def test_empty_file(self):
        result = validate_file_size(0)
        assert not result.is_valid
        assert result.error == "File is empty."

    def test_exactly_max_size_is_valid(self):
        assert validate_file_size(MAX_FILE_SIZE).is_valid

    def test_too_large(self):
        result = validate_file_size(MAX_FILE_SIZE + 1)
        assert not result.is_valid
        assert result.error == "File too large. Maximum size is 10MB. Received: 10MB"

    def test_too_large_rounds_received_size(self):
        result = validate_file_size(int(12.6 * 1024 * 1024))
        assert result.error.endswith("Received: 13MB")


class TestValidateFileType:
    """Tests for MIME type, extension and signature checks."""

    def test_valid_pdf(self):
        assert validate_file_type("application/pdf", "a.pdf", b"%PDF").is_valid

    def test_wrong_mime_type(self):
        result = validate_file_type("image/png", "a.pdf", b"%PDF")
        assert result.error == "Invalid file type. Only PDF files are allowed. Received: image/png"

    def test_wrong_extension(self):
        result = validate_file_type("application/pdf", "a.txt", b"%PDF")
        assert result.error == "Invalid file extension. Only .pdf files are allowed."

    def test_wrong_signature(self):
        result = validate_file_type("application/pdf", "a.pdf", b"PK\x03\x04")
        assert not result.is_valid
        assert result.error.startswith("File content does not match PDF format.")


class TestValidateUpload:
    """Tests for the combined check order."""

    def test_accepts_valid_pdf(self, sample_pdf_bytes: bytes):
        assert validate_upload("doc.pdf", "application/pdf", sample_pdf_bytes).is_valid

    def test_name_checked_before_size(self):
        result = validate_upload("../x.pdf", "application/pdf", b"")
        assert result.error == "File name contains invalid path characters."

    def test_size_checked_before_type(self):
        result = validate_upload("x.pdf", "text/plain", b"")
        assert result.error == "File is empty."

    def test_custom_max_size(self, sample_pdf_bytes: bytes):
        result = validate_upload("doc.pdf", "application/pdf", sample_pdf_bytes, max_size=10)
        assert not result.is_valid


class TestSanitizeFileName:
    def test_replaces_unsafe_characters(self):
        assert sanitize_file_name('in"voice?.pdf') == "in_voice_.pdf"

    def test_truncates(self):
        assert len(sanitize_file_name("a" * 300 + ".pdf")) == 255
