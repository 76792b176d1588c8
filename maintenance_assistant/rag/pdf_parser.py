"""PDF text extraction for uploaded service manuals."""
from pathlib import Path
from typing import List

import fitz  # PyMuPDF
import structlog

from maintenance_assistant.errors import ExtractionFailed

logger = structlog.get_logger()


class PDFParser:
    """Extracts plain text from PDF bytes with PyMuPDF."""

    def extract_pages(self, content: bytes) -> List[str]:
        """Return the text of every page, in order.

        Raises:
            ExtractionFailed: If the bytes are not a readable PDF
        """
        if not content:
            raise ExtractionFailed("Document is empty")

        try:
            with fitz.open(stream=content, filetype="pdf") as doc:
                if doc.needs_pass:
                    raise ExtractionFailed("Document is encrypted")
                pages = [page.get_text() for page in doc]
        except ExtractionFailed:
            raise
        except Exception as e:
            logger.error("pdf_open_failed", error=str(e), error_type=type(e).__name__)
            raise ExtractionFailed(f"Failed to read PDF: {e}") from e

        return pages

    def extract_text(self, content: bytes) -> str:
        """Extract the full document text.

        Pages are joined with a blank line so a page break also ends a
        paragraph.

        Raises:
            ExtractionFailed: If the PDF is unreadable or has no text layer
        """
        pages = self.extract_pages(content)
        text = "\n\n".join(page.strip() for page in pages if page.strip())

        if not text:
            raise ExtractionFailed(
                "No extractable text (scanned or image-only PDF?)",
                {"page_count": len(pages)},
            )

        logger.debug("pdf_text_extracted", page_count=len(pages), text_length=len(text))
        return text

    def parse_file(self, file_path: Path) -> str:
        """Extract text from a PDF on disk."""
        if not file_path.exists():
            raise FileNotFoundError(f"PDF file not found: {file_path}")
        return self.extract_text(file_path.read_bytes())
