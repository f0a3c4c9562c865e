"""
PDF rendering service using pdf2image (poppler).

Renders PDF pages to images for the image-based AI input mode.
"""

import io
import logging

from pdf2image import convert_from_bytes
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
)
from PIL import Image

logger = logging.getLogger(__name__)

# Longest side sent to the model
MAX_IMAGE_SIZE = 2048


class PDFConversionError(Exception):
    """Raised when PDF conversion fails."""

    pass


class PDFService:
    """
    Service for PDF rendering operations.

    Uses pdf2image (backed by poppler) to convert PDF pages to images.
    """

    def __init__(self, dpi: int = 200, image_format: str = "PNG"):
        """
        Initialize the PDF service.

        Args:
            dpi: Resolution for PDF to image conversion. Higher = better quality but slower.
            image_format: Output image format (PNG recommended for quality).
        """
        self.dpi = dpi
        self.image_format = image_format

    def convert_pdf_to_images(
        self,
        pdf_bytes: bytes,
        first_page: int | None = None,
        last_page: int | None = None,
    ) -> list[Image.Image]:
        """
        Convert PDF pages to PIL Images.

        Args:
            pdf_bytes: PDF file content.
            first_page: First page to convert (1-indexed, inclusive). None for first page.
            last_page: Last page to convert (1-indexed, inclusive). None for last page.

        Returns:
            List of PIL Image objects, one per page.

        Raises:
            PDFConversionError: If conversion fails for any reason.
        """
        if not pdf_bytes:
            raise PDFConversionError("Empty PDF file provided")

        if pdf_bytes[:4] != b"%PDF":
            raise PDFConversionError("Invalid PDF file: does not start with PDF header")

        try:
            logger.info(
                "Converting PDF to images (dpi=%d, pages=%s-%s)",
                self.dpi,
                first_page or "first",
                last_page or "last",
            )
            images = convert_from_bytes(
                pdf_bytes,
                dpi=self.dpi,
                fmt=self.image_format.lower(),
                first_page=first_page,
                last_page=last_page,
                thread_count=2,
            )
            logger.info("Successfully converted %d page(s)", len(images))
            return images

        except PDFInfoNotInstalledError as e:
            logger.error("Poppler not installed: %s", e)
            raise PDFConversionError(
                "Poppler not installed. Install poppler-utils: "
                "brew install poppler (macOS) or apt-get install poppler-utils (Linux)"
            ) from e

        except PDFPageCountError as e:
            logger.error("Could not get PDF page count: %s", e)
            raise PDFConversionError(f"Could not determine PDF page count: {e}") from e

        except PDFSyntaxError as e:
            logger.error("PDF syntax error: %s", e)
            raise PDFConversionError(f"Invalid or corrupted PDF file: {e}") from e

        except Exception as e:
            logger.exception("Unexpected error during PDF conversion")
            raise PDFConversionError(f"PDF conversion failed: {e}") from e

    def image_to_bytes(self, image: Image.Image, format: str = "PNG", quality: int = 95) -> bytes:
        """
        Convert a PIL Image to bytes, downscaling oversized pages.

        Args:
            image: PIL Image to convert.
            format: Output format (PNG, JPEG, etc.).
            quality: Quality for lossy formats (1-100).
        """
        if max(image.size) > MAX_IMAGE_SIZE:
            ratio = MAX_IMAGE_SIZE / max(image.size)
            new_size = (int(image.size[0] * ratio), int(image.size[1] * ratio))
            image = image.resize(new_size, Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        save_kwargs = {"format": format}
        if format.upper() in ("JPEG", "JPG", "WEBP"):
            save_kwargs["quality"] = quality
        image.save(buffer, **save_kwargs)
        return buffer.getvalue()

    def render_pages_as_png(self, pdf_bytes: bytes, max_pages: int = 10) -> list[bytes]:
        """Render up to `max_pages` leading pages as PNG bytes."""
        images = self.convert_pdf_to_images(pdf_bytes, first_page=1, last_page=max_pages)
        if not images:
            raise PDFConversionError("No pages found in PDF")
        return [self.image_to_bytes(image) for image in images]


# Singleton instance for convenience
_pdf_service: PDFService | None = None


def get_pdf_service() -> PDFService:
    """Get or create the PDF service singleton."""
    global _pdf_service
    if _pdf_service is None:
        _pdf_service = PDFService()
    return _pdf_service
