"""Small text helpers shared by extraction, artifact generation and context assembly."""

from __future__ import annotations

import re

# Separates pages in extracted PDF text; chunk page numbers are derived from it.
PAGE_BREAK = "\f"

TRUNCATION_MARKER = (
    "\n\n[... Content truncated for length. The full document contains more content ...]"
)

_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens."""
    return len(text.split())


def normalize_whitespace(text: str) -> str:
    text = _MULTI_SPACE.sub(" ", text)
    text = _MULTI_NEWLINE.sub("\n\n", text)
    return text.strip()


def truncate_with_marker(text: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
    """Return *text* cut to *max_chars* characters, followed by *marker* if anything was cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker


def page_number_at(text: str, offset: int) -> int:
    """1-based page number of character *offset* in page-break separated text."""
    return text.count(PAGE_BREAK, 0, max(0, offset)) + 1
