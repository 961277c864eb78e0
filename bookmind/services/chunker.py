"""Text chunking with overlapping windows and paragraph boundary preservation.

Splits extracted document text into :class:`~bookmind.models.rag.DocumentChunk`
objects sized for embedding models.

1. **Paragraph-preserving** -- chunk boundaries align with paragraph breaks
   (blank lines) so no chunk starts or ends mid-thought.
2. **Overlapping windows** -- consecutive chunks share up to ``overlap``
   tokens of trailing paragraphs so concepts spanning a boundary land in at
   least one chunk.
3. **Page-aware** -- text is split on form feeds first; every chunk records
   the page its first paragraph came from.

A paragraph above the chunk size is split at sentence boundaries (Latin and CJK
terminators, abbreviation-aware); a sentence still too long is cut into
fixed-size character windows.
"""

from __future__ import annotations

import re
import uuid

import structlog

from bookmind.models.rag import DocumentChunk
from bookmind.utils.text import PAGE_BREAK

logger = structlog.get_logger(logger_name=__name__)

# Abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "Dr", "Mr", "Mrs", "Ms", "Prof", "Jr", "Sr", "St", "Vol", "No",
        "vs", "etc", "approx", "e.g", "i.e", "cf", "ed", "pp",
    }
)

_SENTENCE_END = re.compile(r"[.!?](?:\s|$)|[。！？]")
_ABBREVIATION_DOT = re.compile(r"\b(" + "|".join(map(re.escape, _ABBREVIATIONS)) + r")\.")
_PARAGRAPH_SPLIT = re.compile(r"\n[ \t]*\n")

# Characters per token for the length heuristic.
_CHARS_PER_TOKEN = 4


class TextChunker:
    """Splits text into overlapping chunks preserving paragraph boundaries.

    Parameters
    ----------
    chunk_size:
        Target maximum token count per chunk.
    overlap:
        Tokens of trailing context repeated at the start of the next chunk.
    """

    def __init__(self, chunk_size: int = 800, overlap: int = 100) -> None:
        if overlap >= chunk_size:
            raise ValueError("overlap must be smaller than chunk_size")
        self._chunk_size = chunk_size
        self._overlap = overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str, document_id: str) -> list[DocumentChunk]:
        """Split *text* into overlapping chunks belonging to *document_id*.

        Empty or whitespace-only input returns an empty list.
        """
        if not text or not text.strip():
            return []

        paragraphs = self._split_paragraphs(text)
        raw_chunks = self._accumulate_chunks(paragraphs)
        has_pages = PAGE_BREAK in text

        chunks = [
            DocumentChunk(
                chunk_id=str(uuid.uuid4()),
                document_id=document_id,
                chunk_index=index,
                text=chunk_text,
                token_count=self.count_tokens(chunk_text),
                page_number=page if has_pages else None,
            )
            for index, (chunk_text, page) in enumerate(raw_chunks)
        ]

        logger.debug(
            "chunking_complete",
            document_id=document_id,
            num_chunks=len(chunks),
            avg_tokens=sum(c.token_count for c in chunks) // max(1, len(chunks)),
        )
        return chunks

    @staticmethod
    def count_tokens(text: str) -> int:
        return max(1, len(text) // _CHARS_PER_TOKEN) if text else 0

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[tuple[str, int]]:
        """Return ``(paragraph, page_number)`` pairs, blanks discarded."""
        paragraphs: list[tuple[str, int]] = []
        for page_index, page in enumerate(text.split(PAGE_BREAK), start=1):
            for part in _PARAGRAPH_SPLIT.split(page):
                if part.strip():
                    paragraphs.append((part.strip(), page_index))
        return paragraphs

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        # Mask periods after abbreviations with a same-length placeholder so
        # indices stay aligned with the original text.
        masked = _ABBREVIATION_DOT.sub(lambda m: m.group(1) + "\x00", text)

        sentences: list[str] = []
        last = 0
        for match in _SENTENCE_END.finditer(masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end
        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)
        return sentences or [text]

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _accumulate_chunks(self, paragraphs: list[tuple[str, int]]) -> list[tuple[str, int]]:
        """Greedily pack paragraphs into ``(chunk_text, first_page)`` windows."""
        chunks: list[tuple[str, int]] = []
        current: list[tuple[str, int, int]] = []  # (text, tokens, page)
        current_tokens = 0

        for para, page in paragraphs:
            para_tokens = self.count_tokens(para)

            if para_tokens > self._chunk_size:
                if current:
                    chunks.append(self._join(current, "\n\n"))
                    current, current_tokens = [], 0
                chunks.extend((piece, page) for piece in self._chunk_long_paragraph(para))
                continue

            if current_tokens + para_tokens > self._chunk_size and current:
                chunks.append(self._join(current, "\n\n"))
                current, current_tokens = self._build_overlap(current)

            current.append((para, para_tokens, page))
            current_tokens += para_tokens

        if current:
            chunks.append(self._join(current, "\n\n"))
        return chunks

    def _chunk_long_paragraph(self, paragraph: str) -> list[str]:
        pieces: list[tuple[str, int, int]] = []
        for sentence in self._split_sentences(paragraph):
            if self.count_tokens(sentence) > self._chunk_size:
                pieces.extend((w, self.count_tokens(w), 0) for w in self._hard_split(sentence))
            else:
                pieces.append((sentence, self.count_tokens(sentence), 0))

        chunks: list[str] = []
        current: list[tuple[str, int, int]] = []
        current_tokens = 0
        for piece in pieces:
            if current_tokens + piece[1] > self._chunk_size and current:
                chunks.append(self._join(current, " ")[0])
                current, current_tokens = self._build_overlap(current)
            current.append(piece)
            current_tokens += piece[1]
        if current:
            chunks.append(self._join(current, " ")[0])
        return chunks

    def _hard_split(self, text: str) -> list[str]:
        width = self._chunk_size * _CHARS_PER_TOKEN
        step = width - self._overlap * _CHARS_PER_TOKEN
        return [text[i : i + width] for i in range(0, len(text), step) if text[i : i + width].strip()]

    def _build_overlap(
        self, parts: list[tuple[str, int, int]]
    ) -> tuple[list[tuple[str, int, int]], int]:
        """Return tail parts whose combined tokens fit within ``overlap``."""
        overlap_parts: list[tuple[str, int, int]] = []
        overlap_tokens = 0
        for part in reversed(parts):
            if overlap_tokens + part[1] > self._overlap:
                break
            overlap_parts.insert(0, part)
            overlap_tokens += part[1]
        return overlap_parts, overlap_tokens

    @staticmethod
    def _join(parts: list[tuple[str, int, int]], separator: str) -> tuple[str, int]:
        return separator.join(p[0] for p in parts), parts[0][2]
