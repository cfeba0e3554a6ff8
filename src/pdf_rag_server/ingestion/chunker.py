"""
Page-aligned text chunking.

Extracted PDF text loses its page boundaries, so pages are approximated by
equal-length windows whose ends are pulled back to a sentence terminator when
one sits close enough to the window end.
"""

from __future__ import annotations

import math
from typing import List

SENTENCE_TERMINATOR = "."

# A terminator earlier than this fraction of the window is ignored
MIN_SNAP_FRACTION = 0.7

CHARS_PER_TOKEN = 4


def split_into_pages(text: str, page_count: int) -> List[str]:
    """
    Split ``text`` into ``page_count`` contiguous chunks.

    Parameters
    ----------
    text : str
        Full extracted document text.
    page_count : int
        Number of pages reported by the extractor.

    Returns
    -------
    List[str]
        Exactly ``max(page_count, 1)`` chunks whose concatenation equals
        ``text``. Chunks are not trimmed and trailing chunks may be empty.
    """
    if page_count <= 1:
        return [text]

    avg_chars_per_page = math.ceil(len(text) / page_count)
    min_snap_index = avg_chars_per_page * MIN_SNAP_FRACTION

    pages: List[str] = []
    position = 0

    for page_index in range(page_count):
        if page_index == page_count - 1:
            # Last page absorbs whatever earlier snapping left behind
            pages.append(text[position:])
            break

        end = min(position + avg_chars_per_page, len(text))
        window = text[position:end]

        if end < len(text):
            last_stop = window.rfind(SENTENCE_TERMINATOR)
            if last_stop >= min_snap_index:
                end = position + last_stop + 1

        pages.append(text[position:end])
        position = end

    return pages


def estimate_tokens(text: str) -> int:
    """Coarse token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def provenance_label(page_number: int, total_pages: int, document_name: str) -> str:
    return f"Page {page_number} of {total_pages} from document '{document_name}': "
