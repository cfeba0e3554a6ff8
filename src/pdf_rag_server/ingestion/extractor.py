"""
PDF text extraction using PyMuPDF.

The caller validates the content type; bytes handed to ``extract_text`` are
assumed to be a PDF and are not sniffed.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple

import fitz  # PyMuPDF

from ..core.errors import ExtractionError

logger = logging.getLogger("rag.ingestion")


class ExtractedText(NamedTuple):
    text: str
    page_count: int


def extract_text(data: bytes) -> ExtractedText:
    """
    Extract the plain text and page count from a PDF byte buffer.

    Page texts are joined with a newline, in page order.

    Raises
    ------
    ExtractionError
        If the buffer is empty or cannot be parsed as a PDF.
    """
    if not data:
        raise ExtractionError("Cannot extract text from an empty file")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # PyMuPDF raises several unrelated types here
        raise ExtractionError(f"File is not a readable PDF: {exc}") from exc

    try:
        page_texts: List[str] = [page.get_text("text") for page in doc]
        page_count = doc.page_count
    except Exception as exc:
        raise ExtractionError(f"Failed to read PDF pages: {exc}") from exc
    finally:
        doc.close()

    text = "\n".join(page_texts)
    if not text.strip():
        logger.warning("PDF has %d page(s) but no extractable text", page_count)

    return ExtractedText(text=text, page_count=page_count)
