"""
Upload validation for PDF documents.

Checks run in a fixed order (name, size, declared type, extension, content
signature) and stop at the first failure. Storage is never touched for a
rejected file.
"""

import logging
import math
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("application/pdf",)
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILE_NAME_LENGTH = 255
PDF_SIGNATURE = b"%PDF"

SUSPICIOUS_EXTENSIONS = (".exe", ".bat", ".cmd", ".scr", ".com", ".pif", ".js", ".vbs")

_DANGEROUS_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')


@dataclass
class FileValidationResult:
    """Outcome of a validation step."""

    is_valid: bool
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def _round_mb(size: int) -> int:
    return math.floor(size / (1024 * 1024) + 0.5)


def validate_file_name(file_name: str) -> FileValidationResult:
    """Reject unsafe names; executable-looking extensions only warn."""
    if _DANGEROUS_CHARS.search(file_name):
        return FileValidationResult(False, "File name contains invalid characters.")

    if ".." in file_name or "/" in file_name or "\\" in file_name:
        return FileValidationResult(False, "File name contains invalid path characters.")

    if len(file_name) > MAX_FILE_NAME_LENGTH:
        return FileValidationResult(
            False,
            f"File name is too long. Maximum {MAX_FILE_NAME_LENGTH} characters allowed.",
        )

    lower_name = file_name.lower()
    warnings = [
        f"File name contains suspicious extension: {ext}"
        for ext in SUSPICIOUS_EXTENSIONS
        if ext in lower_name
    ]
    return FileValidationResult(True, warnings=warnings)


def validate_file_size(size: int, max_size: int = MAX_FILE_SIZE) -> FileValidationResult:
    if size > max_size:
        return FileValidationResult(
            False,
            f"File too large. Maximum size is {_round_mb(max_size)}MB. "
            f"Received: {_round_mb(size)}MB",
        )

    if size == 0:
        return FileValidationResult(False, "File is empty.")

    return FileValidationResult(True)


def validate_file_type(
    content_type: str | None, file_name: str, header: bytes
) -> FileValidationResult:
    """
    Check declared MIME type, extension and the leading magic bytes.

    Args:
        content_type: MIME type declared by the client.
        file_name: Original file name.
        header: At least the first four bytes of the file.
    """
    if content_type not in ALLOWED_MIME_TYPES:
        return FileValidationResult(
            False,
            f"Invalid file type. Only PDF files are allowed. Received: {content_type or ''}",
        )

    if not file_name.lower().endswith(".pdf"):
        return FileValidationResult(
            False, "Invalid file extension. Only .pdf files are allowed."
        )

    if header[: len(PDF_SIGNATURE)] != PDF_SIGNATURE:
        return FileValidationResult(
            False,
            "File content does not match PDF format. "
            "The file may be corrupted or not a valid PDF.",
        )

    return FileValidationResult(True)


def validate_upload(
    file_name: str,
    content_type: str | None,
    content: bytes,
    max_size: int = MAX_FILE_SIZE,
) -> FileValidationResult:
    """Run every check in order and collect warnings from the passing ones."""
    name_result = validate_file_name(file_name)
    if not name_result.is_valid:
        return name_result

    size_result = validate_file_size(len(content), max_size)
    if not size_result.is_valid:
        return size_result

    type_result = validate_file_type(content_type, file_name, content[:4])
    if not type_result.is_valid:
        return type_result

    warnings = name_result.warnings + size_result.warnings + type_result.warnings
    if warnings:
        logger.warning("Upload %r passed validation with warnings: %s", file_name, warnings)
    return FileValidationResult(True, warnings=warnings)


def sanitize_file_name(file_name: str) -> str:
    """Make a file name safe for storage and display."""
    sanitized = _DANGEROUS_CHARS.sub("_", file_name)
    sanitized = sanitized.replace("..", "_")
    sanitized = re.sub(r"[/\\]", "_", sanitized)
    return sanitized[:MAX_FILE_NAME_LENGTH].strip()
