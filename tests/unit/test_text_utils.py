"""Unit tests for bookmind.utils.text."""

from __future__ import annotations

from bookmind.utils.text import (
    PAGE_BREAK,
    TRUNCATION_MARKER,
    count_words,
    normalize_whitespace,
    page_number_at,
    truncate_with_marker,
)


class TestCountWords:
    def test_counts_whitespace_tokens(self) -> None:
        assert count_words("one two\tthree\nfour") == 4

    def test_empty(self) -> None:
        assert count_words("   ") == 0


class TestNormalizeWhitespace:
    def test_collapses_spaces_and_blank_lines(self) -> None:
        text = "  a   b\t\tc\n\n\n\nd  "
        assert normalize_whitespace(text) == "a b c\n\nd"

    def test_keeps_single_blank_line(self) -> None:
        assert normalize_whitespace("a\n\nb") == "a\n\nb"


class TestTruncateWithMarker:
    def test_short_text_unchanged(self) -> None:
        assert truncate_with_marker("hello", 10) == "hello"

    def test_exact_length_unchanged(self) -> None:
        assert truncate_with_marker("hello", 5) == "hello"

    def test_long_text_cut_and_marked(self) -> None:
        result = truncate_with_marker("abcdefghij", 4)
        assert result == "abcd" + TRUNCATION_MARKER

    def test_custom_marker(self) -> None:
        assert truncate_with_marker("abcdef", 3, marker="...") == "abc..."


class TestPageNumberAt:
    def test_first_page(self) -> None:
        text = f"page one{PAGE_BREAK}page two{PAGE_BREAK}page three"
        assert page_number_at(text, 0) == 1

    def test_later_pages(self) -> None:
        text = f"page one{PAGE_BREAK}page two{PAGE_BREAK}page three"
        assert page_number_at(text, text.index("two")) == 2
        assert page_number_at(text, text.index("three")) == 3

    def test_negative_offset_is_first_page(self) -> None:
        assert page_number_at(f"a{PAGE_BREAK}b", -5) == 1
