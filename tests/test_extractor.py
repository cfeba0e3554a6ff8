import fitz
import pytest

from pdf_rag_server.core.errors import ExtractionError
from pdf_rag_server.ingestion.extractor import extract_text


def _pdf(*pages):
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_extracts_pages_in_order():
    extracted = extract_text(_pdf("First page text", "Second page text"))

    assert extracted.page_count == 2
    assert extracted.text.index("First page text") < extracted.text.index("Second page text")


def test_blank_pdf_has_pages_but_no_text():
    extracted = extract_text(_pdf("", ""))

    assert extracted.page_count == 2
    assert extracted.text.strip() == ""


def test_empty_bytes_raise():
    with pytest.raises(ExtractionError):
        extract_text(b"")


def test_garbage_bytes_raise():
    with pytest.raises(ExtractionError):
        extract_text(b"this is not a pdf at all")
