"""
In-memory PDF helpers for document extraction.
"""
import logging
from io import BytesIO
from typing import Optional

from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError, PDFInfoNotInstalledError

logger = logging.getLogger(__name__)

PDF_MAGIC = b'%PDF'


class PDFHandler:
    """Detects PDFs and rasterizes their first page for image-only APIs."""

    @staticmethod
    def is_pdf(document_bytes: bytes) -> bool:
        """Check the PDF magic bytes."""
        return document_bytes[:len(PDF_MAGIC)] == PDF_MAGIC

    @staticmethod
    def first_page_png(pdf_bytes: bytes, dpi: int = 200) -> Optional[bytes]:
        """
        Render the first page of a PDF as PNG bytes.

        Args:
            pdf_bytes: PDF file as bytes
            dpi: Rasterization resolution

        Returns:
            PNG bytes, or None if the PDF could not be rendered (e.g. poppler missing)
        """
        try:
            pages = convert_from_bytes(pdf_bytes, dpi=dpi, first_page=1, last_page=1)
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as e:
            logger.error(f"Error converting PDF to image: {e}")
            return None

        if not pages:
            logger.error("PDF has no renderable pages")
            return None

        buffer = BytesIO()
        pages[0].save(buffer, format='PNG')
        logger.info(f"Rendered first PDF page at {dpi} dpi ({pages[0].width}x{pages[0].height})")
        return buffer.getvalue()
