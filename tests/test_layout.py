"""
Tests for layout reconstruction.

Positioned fragments -> reading-order lines.
"""

from cantine_ledger.extraction.layout import (
    TextFragment,
    normalize_text,
    page_to_lines,
    pages_to_lines,
)


class TestNormalizeText:
    """Tests for normalize_text() function."""

    def test_non_breaking_spaces_replaced(self):
        assert normalize_text("SANS\u00a0PORC") == "SANS PORC"

    def test_whitespace_collapsed_and_trimmed(self):
        assert normalize_text("  BRANLY   -  MATERNELLE \t") == "BRANLY - MATERNELLE"

    def test_none_is_empty(self):
        assert normalize_text(None) == ""


class TestPageToLines:
    """Tests for page_to_lines() function."""

    def test_fragments_sorted_left_to_right(self):
        """Fragments of a band are joined in x order, not input order."""
        page = [(200, 500, "STANDARD"), (40, 500, "BRANLY"), (300, 500, "12")]
        assert page_to_lines(page) == ["BRANLY STANDARD 12"]

    def test_bands_ordered_top_first(self):
        """Higher y is higher on the page and comes first."""
        page = [(40, 100, "bottom"), (40, 700, "top"), (40, 400, "middle")]
        assert page_to_lines(page) == ["top", "middle", "bottom"]

    def test_tolerance_joins_close_fragments(self):
        """Fragments within the tolerance share a line."""
        page = [(40, 500.0, "A"), (80, 501.5, "B"), (120, 498.0, "C")]
        assert page_to_lines(page, tolerance=2.0) == ["A B C"]

    def test_fragment_beyond_tolerance_opens_new_line(self):
        page = [(40, 500.0, "A"), (80, 497.0, "B")]
        assert page_to_lines(page, tolerance=2.0) == ["A", "B"]

    def test_band_keeps_first_fragment_y(self):
        """A band's position is the y of the fragment that opened it."""
        page = [(40, 500.0, "A"), (80, 502.0, "B"), (120, 503.5, "C")]
        # C is 1.5 from B but 3.5 from the band (500), so it opens its own band
        assert page_to_lines(page, tolerance=2.0) == ["C", "A B"]

    def test_empty_lines_dropped(self):
        page = [(40, 500, "  "), (40, 400, "text")]
        assert page_to_lines(page) == ["text"]

    def test_accepts_text_fragments(self):
        page = [TextFragment(10, 10, "b"), TextFragment(0, 10, "a")]
        assert page_to_lines(page) == ["a b"]

    def test_empty_page(self):
        assert page_to_lines([]) == []


class TestPagesToLines:
    """Tests for pages_to_lines() function."""

    def test_pages_appended_in_order(self):
        """Page 2 lines follow page 1 lines, whatever their y."""
        pages = [
            [(40, 100, "page1-bottom"), (40, 700, "page1-top")],
            [(40, 700, "page2-top")],
        ]
        assert pages_to_lines(pages) == ["page1-top", "page1-bottom", "page2-top"]
