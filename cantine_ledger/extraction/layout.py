#!/usr/bin/env python3
"""
Layout Reconstruction for Meal Order Documents

Turns the positioned text fragments of each page into reading-order lines:
1. Cluster fragments into horizontal bands (|y - band.y| <= tolerance)
2. Sort each band left to right and join with single spaces
3. Order bands top of page first (descending y, PDF user space)

Pages are processed in order and their lines appended.

The pdfplumber adapter at the bottom is the only place that touches PDF
files; everything else works on (x, y, text) triples.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Union

import pdfplumber

logger = logging.getLogger(__name__)

# Vertical distance (PDF points) under which two fragments share a line
DEFAULT_LINE_TOLERANCE = 2.0

_WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class TextFragment:
    """A piece of text at a position on the page (PDF user space, y grows upward)."""
    x: float
    y: float
    text: str


@dataclass
class _Band:
    y: float
    fragments: List[TextFragment] = field(default_factory=list)


Page = Sequence[Union[TextFragment, tuple]]


def normalize_text(value: str) -> str:
    """Replace non-breaking spaces, collapse whitespace runs and trim."""
    return _WHITESPACE.sub(' ', (value or '').replace('\u00a0', ' ')).strip()


def _as_fragment(item) -> TextFragment:
    if isinstance(item, TextFragment):
        return item
    x, y, text = item
    return TextFragment(float(x), float(y), text)


def page_to_lines(page: Page, tolerance: float = DEFAULT_LINE_TOLERANCE) -> List[str]:
    """
    Reconstruct the lines of a single page.

    A fragment joins the first band whose representative y (the y of the
    fragment that opened it) is within `tolerance`; otherwise it opens a
    new band.

    Args:
        page: Fragments as TextFragment or (x, y, text) tuples
        tolerance: Maximum vertical distance to join an existing band

    Returns:
        Non-empty lines, top of page first
    """
    bands: List[_Band] = []

    for item in page:
        fragment = _as_fragment(item)
        band = next((b for b in bands if abs(b.y - fragment.y) <= tolerance), None)
        if band is None:
            band = _Band(y=fragment.y)
            bands.append(band)
        band.fragments.append(fragment)

    lines = []
    for band in sorted(bands, key=lambda b: b.y, reverse=True):
        ordered = sorted(band.fragments, key=lambda f: f.x)
        line = normalize_text(' '.join(f.text for f in ordered))
        if line:
            lines.append(line)
    return lines


def pages_to_lines(
    pages: Iterable[Page],
    tolerance: float = DEFAULT_LINE_TOLERANCE
) -> List[str]:
    """Reconstruct the lines of a whole document, pages in order."""
    lines: List[str] = []
    for page in pages:
        lines.extend(page_to_lines(page, tolerance))
    return lines


# =============================================================================
# PDF ADAPTER
# =============================================================================


def read_pdf_fragments(pdf_path: Union[str, Path]) -> List[List[TextFragment]]:
    """
    Extract positioned words from every page of a PDF.

    pdfplumber measures `bottom` from the top edge of the page; it is
    flipped so that y grows upward like the raw PDF coordinates.

    Args:
        pdf_path: Path to the PDF file

    Returns:
        One list of fragments per page
    """
    pages = []
    with pdfplumber.open(pdf_path) as pdf:
        for page in pdf.pages:
            height = float(page.height)
            words = page.extract_words(keep_blank_chars=True) or []
            pages.append([
                TextFragment(float(w["x0"]), height - float(w["bottom"]), w.get("text", ""))
                for w in words
            ])

    logger.debug(f"{Path(pdf_path).name}: {len(pages)} page(s) read")
    return pages
