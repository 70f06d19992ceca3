"""
Tests for meal order row extraction.

Covers document metadata, the header/table state machine and row building.
"""

import pytest

from conftest import HEADER, lines_to_page, order_lines
from cantine_ledger.extraction.order_parser import (
    LineKind,
    OrderRowExtractor,
    DocumentMetadata,
    ParseError,
    ParserState,
    document_id_for,
    extract_metadata,
    format_week,
    normalize_regime,
    parse_header_days,
    parse_lines,
    parse_pages,
    school_year_for,
)


# =============================================================================
# METADATA
# =============================================================================

class TestSchoolYear:
    """Tests for school_year_for() function."""

    def test_september_starts_new_year(self):
        assert school_year_for(9, 2023) == "2023-2024"

    def test_spring_belongs_to_previous_start(self):
        assert school_year_for(3, 2024) == "2023-2024"

    def test_august_still_previous_year(self):
        assert school_year_for(8, 2024) == "2023-2024"


class TestFormatWeek:
    """Tests for format_week() function."""

    def test_single_digit_padded(self):
        assert format_week("7") == "07"
        assert format_week(7) == "07"

    def test_two_digits_unchanged(self):
        assert format_week("12") == "12"

    def test_leading_zero_kept_two_digits(self):
        assert format_week("012") == "12"


class TestExtractMetadata:
    """Tests for extract_metadata() function."""

    def test_week_and_date(self):
        meta = extract_metadata(["Commande semaine 12 du 18/03/2024"])
        assert meta.week_number == "12"
        assert meta.document_date == "18/03/2024"
        assert meta.school_year == "2023-2024"

    def test_week_without_space(self):
        meta = extract_metadata(["SEMAINE3"])
        assert meta.week_number == "03"

    def test_missing_date_leaves_fields_empty(self):
        meta = extract_metadata(["semaine 40"])
        assert meta.document_date is None
        assert meta.school_year is None

    def test_missing_week_raises(self):
        with pytest.raises(ParseError) as exc:
            extract_metadata(["Lieu de prise de repas Lundi"], document="bad.pdf")
        assert exc.value.document == "bad.pdf"

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            extract_metadata([])


def test_document_id_replaces_whitespace():
    assert document_id_for("LYCEE  COUFFIGNAL", "05") == "doc_LYCEE-COUFFIGNAL_05"


# =============================================================================
# STATE MACHINE
# =============================================================================

class TestHeaderDays:
    """Tests for parse_header_days() function."""

    def test_days_in_weekday_order(self):
        assert parse_header_days(HEADER) == ["monday", "tuesday", "thursday", "friday"]

    def test_wednesday_abbreviation(self):
        line = "Lieu de prise de repas Lundi Mardi Mercr. Jeudi Vendr."
        assert parse_header_days(line) == ["monday", "tuesday", "wednesday", "thursday", "friday"]

    def test_no_days(self):
        assert parse_header_days("Lieu de prise de repas") == []


class TestRegimeNormalization:
    """Tests for normalize_regime() function."""

    def test_accents_removed(self):
        assert normalize_regime("Végétarien", adult=False) == "VEGETARIEN"

    def test_adult_prefix(self):
        assert normalize_regime("sans porc", adult=True) == "ADULTE SANS PORC"


class TestOrderRowExtractor:
    """Tests for the header/table state machine."""

    @pytest.fixture
    def extractor(self):
        return OrderRowExtractor(DocumentMetadata(week_number="12", school_year="2023-2024"))

    def test_starts_seeking_header(self, extractor):
        assert extractor.state is ParserState.SEEKING_HEADER

    def test_data_ignored_before_header(self, extractor):
        """Rows outside a table are not data."""
        line = "SCHOOL ALPHA ELEMENTARY STANDARD 12 8 0 15"
        assert extractor.classify(line) is LineKind.NO_MATCH
        assert extractor.feed(line) is None

    def test_header_opens_table(self, extractor):
        extractor.feed(HEADER)
        assert extractor.state is ParserState.IN_TABLE
        assert extractor.header_days == ["monday", "tuesday", "thursday", "friday"]

    def test_header_without_days_opens_nothing(self, extractor):
        extractor.feed("Lieu de prise de repas")
        assert extractor.state is ParserState.SEEKING_HEADER

    @pytest.mark.parametrize("stop_line", [
        "Totaux tous lieux confondus 10 10",
        "Edité le 15/03/2024",
        "  SOUS-TOTAL 40",
        "TOTAL 40",
        "TOTAL",
    ])
    def test_stop_lines_close_table(self, extractor, stop_line):
        extractor.feed(HEADER)
        assert extractor.classify(stop_line) is LineKind.STOP
        extractor.feed(stop_line)
        assert extractor.state is ParserState.SEEKING_HEADER
        assert extractor.header_days == []

    def test_totally_is_not_a_stop_line(self, extractor):
        """TOTAL must be followed by a space or end the line."""
        extractor.feed(HEADER)
        assert extractor.classify("TOTALEMENT STANDARD 1 2 3 4") is not LineKind.STOP

    def test_new_header_replaces_columns(self, extractor):
        extractor.feed(HEADER)
        extractor.feed("Lieu de prise de repas Jeudi Vendredi")
        row = extractor.feed("BRANLY STANDARD 4 5")
        assert (row.monday, row.thursday, row.friday) == (0, 4, 5)

    def test_short_row_skipped(self, extractor):
        """Fewer numbers than declared days: the row is dropped."""
        extractor.feed(HEADER)
        assert extractor.feed("BRANLY STANDARD 4 5") is None
        assert extractor.stats.rows_skipped == 1

    def test_row_without_location_skipped(self, extractor):
        extractor.feed(HEADER)
        assert extractor.feed(" STANDARD 1 2 3 4") is None

    def test_wednesday_column_never_counted(self, extractor):
        extractor.feed("Lieu de prise de repas Lundi Mardi Mercr Jeudi Vendr")
        row = extractor.feed("BRANLY HALAL 1 2 50 3 4")
        assert row.wednesday == 0
        assert row.total == 10
        assert (row.monday, row.tuesday, row.thursday, row.friday) == (1, 2, 3, 4)

    def test_extra_numbers_ignored(self, extractor):
        extractor.feed(HEADER)
        row = extractor.feed("BRANLY STANDARD 1 2 3 4 99")
        assert row.total == 10


# =============================================================================
# DOCUMENTS
# =============================================================================

class TestParseLines:
    """Tests for parse_lines() end to end on document lines."""

    def test_single_row(self):
        """Header Mon/Tue/Thu/Fri, one data line, week 12."""
        rows = parse_lines(order_lines(["SCHOOL ALPHA ELEMENTARY STANDARD 12 8 0 15"]))

        assert len(rows) == 1
        row = rows[0]
        assert row.base_school == "SCHOOL ALPHA"
        assert row.school_type == "SCHOOL ALPHA ELEMENTARY"
        assert row.regime == "STANDARD"
        assert (row.monday, row.tuesday, row.thursday, row.friday) == (12, 8, 0, 15)
        assert row.total == 35
        assert row.week_number == "12"
        assert row.school_year == "2023-2024"
        assert row.document_date == "18/03/2024"
        assert row.document_id == "doc_SCHOOL-ALPHA_12"

    def test_adult_and_multiword_regimes(self):
        rows = parse_lines(order_lines([
            "BRANLY - MATERNELLE ADULTE SANS PORC 1 1 1 1",
            "BRANLY - MATERNELLE VEGE SUPPLEMENTAIRE 2 2 2 2",
        ]))
        assert [r.regime for r in rows] == ["ADULTE SANS PORC", "VEGE SUPPLEMENTAIRE"]
        assert {r.base_school for r in rows} == {"BRANLY"}
        assert {r.school_type for r in rows} == {"BRANLY - MATERNELLE"}

    def test_rows_after_stop_ignored(self):
        lines = order_lines(["BRANLY STANDARD 1 1 1 1"]) + ["STURM STANDARD 2 2 2 2"]
        rows = parse_lines(lines)
        assert [r.base_school for r in rows] == ["BRANLY"]

    def test_no_rows(self):
        assert parse_lines(order_lines([])) == []

    def test_missing_week_raises(self):
        with pytest.raises(ParseError):
            parse_lines([HEADER, "BRANLY STANDARD 1 1 1 1"])


class TestParsePages:
    """Tests for parse_pages() from positioned fragments."""

    def test_table_continues_on_next_page(self):
        """State carries across pages: page 2 rows use page 1's header."""
        page1 = lines_to_page(["Commande semaine 12 du 18/03/2024", HEADER, "BRANLY STANDARD 1 2 3 4"])
        page2 = lines_to_page(["STURM HALAL 5 6 7 8", "TOTAL 26"])
        rows = parse_pages([page1, page2], document="S12.pdf")
        assert [(r.base_school, r.total) for r in rows] == [("BRANLY", 10), ("STURM", 26)]
