"""
CV Document Parser - recover plain text from uploaded CV bytes.

Supports:
- PDF (application/pdf) via pypdf
- Word documents (.docx) via python-docx, paragraphs and table cells
- Legacy Word (.doc): best-effort recovery of readable text runs
- Plain text (text/plain)

No OCR: scanned PDFs without a text layer are rejected.
"""
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from docx import Document
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from core.config_loader import PDF_MIME, MSWORD_MIME, DOCX_MIME
from core.exceptions import DocumentParseError

logger = logging.getLogger(__name__)

TEXT_MIME = "text/plain"

_EXTENSION_FORMATS = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".doc": "doc",
    ".txt": "txt",
}

_MIME_FORMATS = {
    PDF_MIME: "pdf",
    DOCX_MIME: "docx",
    MSWORD_MIME: "doc",
    TEXT_MIME: "txt",
}

# Runs of at least 4 printable characters, as found in .doc binaries
_ASCII_RUN = re.compile(rb"[\x20-\x7e\t\r\n\xc0-\xff]{4,}")
_UTF16_RUN = re.compile(rb"(?:[\x20-\x7e\t\r\n]\x00){4,}")


@dataclass
class ParsedDocument:
    """Result of parsing an uploaded CV.

    Attributes:
        text: Extracted text suitable for LLM processing
        format: Detected file format ('pdf', 'docx', 'doc', 'txt')
        page_count: Number of pages for PDFs, None otherwise
    """
    text: str
    format: str
    page_count: Optional[int] = None


def detect_format(filename: str, mime_type: Optional[str]) -> Optional[str]:
    """Format from the declared mime type, falling back to the extension."""
    if mime_type and mime_type.lower() in _MIME_FORMATS:
        return _MIME_FORMATS[mime_type.lower()]
    return _EXTENSION_FORMATS.get(Path(filename or "").suffix.lower())


class DocumentParser:
    """Route CV bytes to the right text extractor."""

    def extract_text(self, data: bytes, filename: str, mime_type: Optional[str] = None) -> ParsedDocument:
        """Extract text from an uploaded CV.

        Raises:
            DocumentParseError: unsupported format, unreadable file, or no text found
        """
        fmt = detect_format(filename, mime_type)
        if fmt is None:
            raise DocumentParseError(f"Unsupported CV format: {filename} ({mime_type})")

        logger.info(f"Parsing CV {filename} (format: {fmt}, {len(data)} bytes)")

        if fmt == "pdf":
            parsed = self._parse_pdf(data)
        elif fmt == "docx":
            parsed = self._parse_docx(data)
        elif fmt == "doc":
            parsed = self._parse_doc(data)
        else:
            parsed = ParsedDocument(text=data.decode("utf-8", errors="replace"), format="txt")

        parsed.text = _normalize_whitespace(parsed.text)
        if not parsed.text:
            raise DocumentParseError(
                f"No text extracted from {filename}. "
                f"The document may be scanned images or have text extraction disabled."
            )
        return parsed

    def _parse_pdf(self, data: bytes) -> ParsedDocument:
        try:
            reader = PdfReader(io.BytesIO(data))
            page_count = len(reader.pages)
        except (PdfReadError, ValueError, OSError) as e:
            raise DocumentParseError(f"Failed to read PDF: {e}") from e

        if page_count == 0:
            raise DocumentParseError("PDF file has no pages")

        pages_text = []
        for i, page in enumerate(reader.pages):
            try:
                page_text = page.extract_text()
            except (PdfReadError, ValueError, KeyError) as e:
                logger.warning(f"Failed to extract text from page {i + 1}: {e}")
                continue
            if page_text and page_text.strip():
                pages_text.append(page_text.strip())

        return ParsedDocument(text="\n\n".join(pages_text), format="pdf", page_count=page_count)

    def _parse_docx(self, data: bytes) -> ParsedDocument:
        try:
            doc = Document(io.BytesIO(data))
        except Exception as e:
            # python-docx surfaces zip, xml and package errors with unrelated types
            raise DocumentParseError(f"Failed to read DOCX: {e}") from e

        paragraphs = [para.text.strip() for para in doc.paragraphs if para.text.strip()]

        # Also extract from tables (common in CVs)
        for table in doc.tables:
            for row in table.rows:
                row_texts = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_texts:
                    paragraphs.append(" ".join(row_texts))

        return ParsedDocument(text="\n\n".join(paragraphs), format="docx")

    def _parse_doc(self, data: bytes) -> ParsedDocument:
        runs = [m.group(0).decode("utf-16-le", errors="ignore") for m in _UTF16_RUN.finditer(data)]
        if not runs:
            runs = [m.group(0).decode("latin-1") for m in _ASCII_RUN.finditer(data)]
        text = "\n".join(r.strip() for r in runs if len(r.strip().split()) >= 2)
        return ParsedDocument(text=text, format="doc")


def _normalize_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\x00", "")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
