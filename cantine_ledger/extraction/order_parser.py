#!/usr/bin/env python3
"""
Meal Order Row Extraction

Turns the reconstructed lines of a weekly order document into delivery rows.

The document grammar is handled by a two-state machine:

    SEEKING_HEADER --header line--> IN_TABLE
    IN_TABLE       --header line--> IN_TABLE (new weekday columns)
    IN_TABLE       --stop line----> SEEKING_HEADER
    IN_TABLE       --data line----> IN_TABLE (row emitted)
    any            --other line---> unchanged (line skipped)

Header lines ("Lieu de prise de repas ... Lundi Mardi Jeudi Vendredi")
declare which weekdays the numeric columns map to. Wednesday is tracked
positionally but never counted.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from cantine_ledger.extraction.layout import DEFAULT_LINE_TOLERANCE, normalize_text, pages_to_lines
from cantine_ledger.extraction.school_identity import base_school_of, school_type_of

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")
COUNTED_WEEKDAYS = ("monday", "tuesday", "thursday", "friday")

HEADER_PATTERN = re.compile(r"^Lieu de prise de repas", re.IGNORECASE)

# Column labels, in weekday order
HEADER_DAY_PATTERNS = (
    ("monday", re.compile(r"Lundi", re.IGNORECASE)),
    ("tuesday", re.compile(r"Mardi", re.IGNORECASE)),
    ("wednesday", re.compile(r"Mercr", re.IGNORECASE)),
    ("thursday", re.compile(r"Jeudi", re.IGNORECASE)),
    ("friday", re.compile(r"Vendr", re.IGNORECASE)),
)

STOP_PATTERNS = (
    re.compile(r"^Totaux tous lieux confondus", re.IGNORECASE),
    re.compile(r"^Edité le", re.IGNORECASE),
    re.compile(r"^\s*SOUS-TOTAL", re.IGNORECASE),
    re.compile(r"^\s*TOTAL( |$)", re.IGNORECASE),
)

REGIMES = ("HALAL", "SANS PORC", "STANDARD", "VEGETARIEN", "VÉGÉTARIEN", "VEGE SUPPLEMENTAIRE")

DATA_PATTERN = re.compile(
    r"^(.*?)\s+(ADULTE\s+)?(" + "|".join(REGIMES) + r")\s+([\d\s]+)$",
    re.IGNORECASE,
)

WEEK_PATTERN = re.compile(r"semaine\s*(\d+)", re.IGNORECASE)
DATE_PATTERN = re.compile(r"du\s(\d{1,2})/(\d{1,2})/(\d{4})", re.IGNORECASE)

_DIGIT = re.compile(r"\d")


class ParseError(ValueError):
    """A document cannot be parsed at all (e.g. no week marker)."""

    def __init__(self, message: str, document: Optional[str] = None):
        super().__init__(message)
        self.document = document


class ParserState(Enum):
    SEEKING_HEADER = "seeking_header"
    IN_TABLE = "in_table"


class LineKind(Enum):
    """What a line triggered in the state machine."""
    HEADER = "header"
    STOP = "stop"
    DATA = "data"
    NO_MATCH = "no_match"


@dataclass
class DocumentMetadata:
    """Document-level markers, extracted once per document."""
    week_number: str
    document_date: Optional[str] = None
    school_year: Optional[str] = None


@dataclass
class DeliveryRow:
    """One regime line of an order document. Every field is always present."""
    base_school: str
    school_type: str
    regime: str
    week_number: str
    school_year: Optional[str] = None
    monday: int = 0
    tuesday: int = 0
    wednesday: int = 0
    thursday: int = 0
    friday: int = 0
    total: int = 0
    document_date: Optional[str] = None
    document_id: str = ""

    @property
    def dedup_key(self) -> Tuple:
        return (self.base_school, self.school_type, self.week_number, self.school_year, self.regime)


@dataclass
class ParseStats:
    """Per-document line accounting."""
    lines: int = 0
    headers: int = 0
    rows_emitted: int = 0
    rows_skipped: int = 0


def format_week(week) -> str:
    """Two-digit week identifier ("7" -> "07", 12 -> "12")."""
    return str(int(week)).zfill(2)[-2:]


def school_year_for(month: int, year: int) -> str:
    """Academic year of a calendar date: September onward starts a new year."""
    if month >= 9:
        return f"{year}-{year + 1}"
    return f"{year - 1}-{year}"


def document_id_for(base_school: str, week_number: str) -> str:
    slug = re.sub(r"\s+", "-", base_school)
    return f"doc_{slug}_{week_number}"


def extract_metadata(lines: Iterable[str], document: Optional[str] = None) -> DocumentMetadata:
    """
    Find the week number and order date of a document.

    Raises:
        ParseError: If no "semaine N" marker is present
    """
    text = "\n".join(lines)

    week_match = WEEK_PATTERN.search(text)
    if not week_match:
        raise ParseError("Week number not found", document)

    metadata = DocumentMetadata(week_number=format_week(week_match.group(1)))

    date_match = DATE_PATTERN.search(text)
    if date_match:
        day, month, year = date_match.groups()
        metadata.document_date = f"{day}/{month}/{year}"
        metadata.school_year = school_year_for(int(month), int(year))

    return metadata


def parse_header_days(line: str) -> List[str]:
    """Weekdays announced by a header line, in column order."""
    return [day for day, pattern in HEADER_DAY_PATTERNS if pattern.search(line)]


def normalize_regime(regime: str, adult: bool) -> str:
    core = normalize_text(regime).upper().replace("É", "E")
    return f"ADULTE {core}" if adult else core


class OrderRowExtractor:
    """
    State machine over the lines of one document.

    Usage:
        extractor = OrderRowExtractor(metadata)
        rows = extractor.feed_all(lines)
    """

    def __init__(self, metadata: DocumentMetadata):
        self.metadata = metadata
        self.state = ParserState.SEEKING_HEADER
        self.header_days: List[str] = []
        self.stats = ParseStats()

    def reset(self) -> None:
        self.state = ParserState.SEEKING_HEADER
        self.header_days = []

    def classify(self, line: str) -> LineKind:
        """Transition trigger for a line, independent of its content otherwise."""
        if HEADER_PATTERN.search(line):
            return LineKind.HEADER
        if any(p.search(line) for p in STOP_PATTERNS):
            return LineKind.STOP
        if self.state is ParserState.IN_TABLE and _DIGIT.search(line) and DATA_PATTERN.match(line):
            return LineKind.DATA
        return LineKind.NO_MATCH

    def feed(self, line: str) -> Optional[DeliveryRow]:
        """Advance the machine by one line; returns a row when one is emitted."""
        self.stats.lines += 1
        kind = self.classify(line)

        if kind is LineKind.HEADER:
            self.header_days = parse_header_days(line)
            # A header without weekday columns opens no table
            self.state = ParserState.IN_TABLE if self.header_days else ParserState.SEEKING_HEADER
            self.stats.headers += 1
            return None

        if kind is LineKind.STOP:
            self.reset()
            return None

        if kind is LineKind.DATA:
            row = self._build_row(DATA_PATTERN.match(line))
            if row is None:
                self.stats.rows_skipped += 1
                logger.debug(f"Malformed row skipped: {line!r}")
            else:
                self.stats.rows_emitted += 1
            return row

        return None

    def feed_all(self, lines: Iterable[str]) -> List[DeliveryRow]:
        rows = []
        for line in lines:
            row = self.feed(line)
            if row is not None:
                rows.append(row)
        return rows

    def _build_row(self, match) -> Optional[DeliveryRow]:
        location = normalize_text(match.group(1))
        if not location:
            return None

        numbers = [int(n) for n in match.group(4).split()]
        if len(numbers) < len(self.header_days):
            return None

        base_school = base_school_of(location)
        row = DeliveryRow(
            base_school=base_school,
            school_type=school_type_of(location),
            regime=normalize_regime(match.group(3), adult=bool(match.group(2))),
            week_number=self.metadata.week_number,
            school_year=self.metadata.school_year,
            document_date=self.metadata.document_date,
            document_id=document_id_for(base_school, self.metadata.week_number),
        )

        for day, value in zip(self.header_days, numbers):
            if day != "wednesday":
                setattr(row, day, value)
                row.total += value

        return row


def parse_lines(lines: List[str], document: Optional[str] = None) -> List[DeliveryRow]:
    """
    Extract the delivery rows of a document from its lines.

    Raises:
        ParseError: If the document has no week marker
    """
    metadata = extract_metadata(lines, document)
    extractor = OrderRowExtractor(metadata)
    rows = extractor.feed_all(lines)

    logger.debug(
        f"{document or 'document'}: week {metadata.week_number}, "
        f"{extractor.stats.rows_emitted} rows, {extractor.stats.rows_skipped} skipped"
    )
    return rows


def parse_pages(
    pages,
    document: Optional[str] = None,
    tolerance: float = DEFAULT_LINE_TOLERANCE
) -> List[DeliveryRow]:
    """Layout reconstruction followed by row extraction."""
    return parse_lines(pages_to_lines(pages, tolerance), document)
