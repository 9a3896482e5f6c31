"""
PDF service for text extraction

Documents are given either as raw bytes or as the path of a staged upload.
"""
import hashlib
import logging
import os
import re
from dataclasses import dataclass
from io import BytesIO
from typing import List, Union

import fitz  # PyMuPDF
from pdfminer.high_level import extract_pages as pdfminer_extract_pages
from pdfminer.layout import LAParams, LTTextContainer

from ..exceptions import ExtractionError

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"

HASH_BLOCK_SIZE = 1024 * 1024

PDFSource = Union[bytes, str, os.PathLike]


@dataclass(frozen=True)
class PageText:
    """Normalized text of one PDF page (1-based page number)"""
    page_number: int
    text: str


def _is_bytes(source: PDFSource) -> bool:
    return isinstance(source, (bytes, bytearray))


class PDFService:
    """Service for turning uploaded PDF documents into plain text"""

    @staticmethod
    def source_size(source: PDFSource) -> int:
        """Size in bytes of an in-memory or staged document"""
        if _is_bytes(source):
            return len(source)
        try:
            return os.path.getsize(source)
        except OSError as e:
            raise ExtractionError("Staged document could not be read", details={"reason": str(e)}) from e

    @staticmethod
    def compute_sha256(source: PDFSource) -> str:
        """Compute SHA256 hash of PDF bytes or of a staged file"""
        if _is_bytes(source):
            return hashlib.sha256(source).hexdigest()

        digest = hashlib.sha256()
        try:
            with open(source, "rb") as f:
                for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
                    digest.update(block)
        except OSError as e:
            raise ExtractionError("Staged document could not be read", details={"reason": str(e)}) from e
        return digest.hexdigest()

    def extract_pages_pymupdf(self, source: PDFSource) -> List[PageText]:
        """Extract per-page text using PyMuPDF (fitz)"""
        if _is_bytes(source):
            doc = fitz.open(stream=source, filetype="pdf")
        else:
            doc = fitz.open(os.fspath(source), filetype="pdf")
        try:
            if doc.needs_pass:
                raise ExtractionError("PDF is encrypted and cannot be read without a password")
            if len(doc) == 0:
                raise ValueError("document has no pages")

            pages = []
            for page_num in range(len(doc)):
                page = doc.load_page(page_num)
                pages.append(PageText(page_num + 1, self._clean_text(page.get_text())))
        finally:
            doc.close()

        logger.info(f"Extracted {len(pages)} pages using PyMuPDF")
        return pages

    def extract_pages_pdfminer(self, source: PDFSource) -> List[PageText]:
        """Extract per-page text using pdfminer.six - fallback method"""
        laparams = LAParams(
            line_margin=0.5,
            word_margin=0.1,
            char_margin=2.0,
            boxes_flow=0.5,
            detect_vertical=True
        )

        pages = []
        document = BytesIO(source) if _is_bytes(source) else os.fspath(source)
        for page_num, layout in enumerate(pdfminer_extract_pages(document, laparams=laparams), start=1):
            text = "".join(
                element.get_text() for element in layout if isinstance(element, LTTextContainer)
            )
            pages.append(PageText(page_num, self._clean_text(text)))

        if not pages:
            raise ValueError("document has no pages")
        logger.info(f"Extracted {len(pages)} pages using pdfminer")
        return pages

    def extract_pages(self, source: PDFSource) -> List[PageText]:
        """
        Extract text page by page, PyMuPDF first and pdfminer as fallback

        Args:
            source: PDF bytes or the path of a staged PDF file

        Raises:
            ExtractionError: empty or unreadable input, encrypted document, or
                content neither parser accepts as a PDF
        """
        size = self.source_size(source)
        if size == 0:
            raise ExtractionError("Uploaded document is empty")

        try:
            return self.extract_pages_pymupdf(source)
        except ExtractionError:
            raise
        except Exception as e:
            logger.warning(f"PyMuPDF failed, trying pdfminer: {e}")

        try:
            return self.extract_pages_pdfminer(source)
        except Exception as e:
            logger.error(f"Both extraction methods failed: {e}")
            raise ExtractionError(
                "PDF text extraction failed",
                details={"reason": str(e), "size": size}
            ) from e

    def extract_text(self, source: PDFSource) -> str:
        """Extract all text in reading order; pages joined by a blank line"""
        pages = self.extract_pages(source)
        return self.join_pages(pages)

    @staticmethod
    def join_pages(pages: List[PageText]) -> str:
        return PAGE_SEPARATOR.join(page.text for page in pages if page.text)

    @staticmethod
    def page_offsets(pages: List[PageText]) -> List[tuple]:
        """
        Start offset of every non-empty page inside ``join_pages(pages)``

        Returns:
            List of ``(offset, page_number)`` in ascending offset order
        """
        offsets = []
        position = 0
        for page in pages:
            if not page.text:
                continue
            offsets.append((position, page.page_number))
            position += len(page.text) + len(PAGE_SEPARATOR)
        return offsets

    def _clean_text(self, text: str) -> str:
        """Clean and normalize extracted text of one page"""
        if not text:
            return ""

        # Remove page numbers and headers/footers
        text = re.sub(r'Page \d+ of \d+', '', text)
        text = re.sub(r'^\s*\d+\s*$', '', text, flags=re.MULTILINE)

        # Collapse runs of spaces/tabs and keep at most one blank line
        text = re.sub(r'[ \t\r\f\v]+', ' ', text)
        text = re.sub(r' *\n *', '\n', text)
        text = re.sub(r'\n{3,}', '\n\n', text)

        return text.strip()

