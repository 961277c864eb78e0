"""Byte-level parsers that turn a fetched document into plain text.

The format is detected from magic bytes, never from the URL:

- ``%PDF``                 -> PyMuPDF, pages joined with a form feed
- ``PK`` + EPUB mimetype   -> ebooklib + BeautifulSoup, chapters joined by blank lines
- anything else that decodes as UTF-8 -> plain text

Anything that cannot be parsed raises :class:`ContentParseError`.
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass

import ebooklib
import fitz  # PyMuPDF
import structlog
from bs4 import BeautifulSoup
from ebooklib import epub

from bookmind.utils.errors import ContentParseError
from bookmind.utils.text import PAGE_BREAK, normalize_whitespace

logger = structlog.get_logger(logger_name=__name__)

_PDF_MAGIC = b"%PDF"
_ZIP_MAGIC = b"PK\x03\x04"
_EPUB_MIMETYPE = b"application/epub+zip"
_HEADING = re.compile(r"^h[1-3]$")


@dataclass(frozen=True)
class ParsedDocument:
    text: str
    page_count: int
    format: str


def parse_document(data: bytes) -> ParsedDocument:
    """Detect the format of *data* and extract its text."""
    if not data:
        raise ContentParseError(message="Document is empty")
    if data.startswith(_PDF_MAGIC):
        return parse_pdf(data)
    if data.startswith(_ZIP_MAGIC) and _EPUB_MIMETYPE in data[:200]:
        return parse_epub(data)
    return parse_plain_text(data)


def parse_pdf(data: bytes) -> ParsedDocument:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise ContentParseError(message=f"Unreadable PDF: {exc}", provider_name="pymupdf") from exc

    try:
        page_count = doc.page_count
        pages = [page.get_text("text") for page in doc]
    except Exception as exc:
        raise ContentParseError(
            message=f"PDF text extraction failed: {exc}", provider_name="pymupdf"
        ) from exc
    finally:
        doc.close()

    text = PAGE_BREAK.join(normalize_whitespace(p) for p in pages)
    if not text.replace(PAGE_BREAK, "").strip():
        raise ContentParseError(
            message="PDF contains no extractable text layer", provider_name="pymupdf"
        )
    logger.info("pdf_parsed", pages=page_count, chars=len(text))
    return ParsedDocument(text=text, page_count=page_count, format="pdf")


def parse_epub(data: bytes) -> ParsedDocument:
    # ebooklib only reads from a path, so spill the bytes to a temp file.
    fd, path = tempfile.mkstemp(suffix=".epub")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        try:
            book = epub.read_epub(path, options={"ignore_ncx": True})
        except Exception as exc:
            raise ContentParseError(
                message=f"Unreadable EPUB: {exc}", provider_name="ebooklib"
            ) from exc
    finally:
        os.unlink(path)

    chapters: list[str] = []
    for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT):
        html_content = item.get_content().decode("utf-8", errors="replace")
        soup = BeautifulSoup(html_content, "html.parser")
        chapter = normalize_whitespace(soup.get_text(separator="\n"))
        if chapter:
            chapters.append(chapter)

    if not chapters:
        raise ContentParseError(message="EPUB contains no text", provider_name="ebooklib")
    text = "\n\n".join(chapters)
    logger.info("epub_parsed", chapters=len(chapters), chars=len(text))
    return ParsedDocument(text=text, page_count=len(chapters), format="epub")


def parse_plain_text(data: bytes) -> ParsedDocument:
    try:
        decoded = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ContentParseError(message="Unsupported binary document format") from exc
    if "\x00" in decoded:
        raise ContentParseError(message="Unsupported binary document format")
    text = normalize_whitespace(decoded)
    if not text:
        raise ContentParseError(message="Document contains no text")
    return ParsedDocument(text=text, page_count=text.count(PAGE_BREAK) + 1, format="text")
