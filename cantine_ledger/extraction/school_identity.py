#!/usr/bin/env python3
"""
School Identity Normalization

Two jobs:
1. Canonicalize a raw location ("BRANLY - MATERNELLE") into a base school
   ("BRANLY"), keeping the upper-cased raw string as the school type so that
   co-located grade levels stay distinguishable.
2. Resolve a base school to its territory (lot) from the versioned
   reference in config/territories.yaml.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from cantine_ledger.utilities.common import get_config_dir, load_yaml_config

logger = logging.getLogger(__name__)

# Territory given to schools no lot claims
UNASSIGNED_TERRITORY = "Non assigné"

# Grade-level qualifiers stripped from locations
GRADE_QUALIFIERS = ("MATERNELLE", "ÉLÉMENTAIRE", "ELEMENTAIRE", "ELEMENTARY", "NURSERY")

_QUALIFIER = "|".join(GRADE_QUALIFIERS)
_PARENTHESIZED = re.compile(rf"\(\s*({_QUALIFIER})\s*\)", re.IGNORECASE)
_DASHED = re.compile(rf"\s[-–—]\s*({_QUALIFIER})\b", re.IGNORECASE)
_BARE = re.compile(rf"\b({_QUALIFIER})\b", re.IGNORECASE)
_SPACES = re.compile(r"\s{2,}")
_DANGLING = re.compile(r"[\s\-–—,]+$")

TERRITORIES_FILE = "territories.yaml"


def base_school_of(location: str) -> str:
    """
    Strip grade-level qualifiers from a raw location.

    Examples:
        >>> base_school_of("BRANLY - MATERNELLE")
        'BRANLY'
        >>> base_school_of("SCHOOL ALPHA ELEMENTARY")
        'SCHOOL ALPHA'
        >>> base_school_of("STURM (ELEMENTAIRE)")
        'STURM'
    """
    s = f" {location or ''} "
    s = _PARENTHESIZED.sub(" ", s)
    s = _DASHED.sub(" ", s)
    s = _BARE.sub(" ", s)
    s = _SPACES.sub(" ", s).strip()
    return _DANGLING.sub("", s)


def school_type_of(location: str) -> str:
    """Full location, upper-cased; distinguishes grade levels at one site."""
    return (location or "").strip().upper()


@dataclass(frozen=True)
class TerritoryDefinition:
    """One lot of the service contract and its member schools, in reference order."""
    lot: Optional[int]
    name: str
    schools: Tuple[str, ...]

    def has_member(self, school_name: str) -> bool:
        """Exact (case-insensitive) membership in the static list."""
        wanted = (school_name or "").strip().upper()
        return any(member.upper() == wanted for member in self.schools)


def parse_territories(entries: Iterable[dict]) -> List[TerritoryDefinition]:
    """Build definitions from the `territories` list of the reference file."""
    territories = []
    for entry in entries:
        name = (entry or {}).get("name")
        if not name:
            raise ValueError(f"Territory entry without a name: {entry!r}")
        territories.append(TerritoryDefinition(
            lot=entry.get("lot"),
            name=str(name),
            schools=tuple(str(s).strip() for s in entry.get("schools") or []),
        ))
    return territories


def load_territories(config_path: Optional[Union[str, Path]] = None) -> List[TerritoryDefinition]:
    """
    Load the territory reference.

    Args:
        config_path: YAML file (default: config/territories.yaml)

    Returns:
        Territory definitions in file order
    """
    path = Path(config_path) if config_path else get_config_dir() / TERRITORIES_FILE
    config = load_yaml_config(path)
    territories = parse_territories(config.get("territories", []))
    logger.debug(f"Loaded {len(territories)} territories from {path}")
    return territories


# Loaded once per process
_default_territories: Optional[List[TerritoryDefinition]] = None


def get_default_territories() -> List[TerritoryDefinition]:
    """Territory reference from config/territories.yaml, cached."""
    global _default_territories

    if _default_territories is None:
        _default_territories = load_territories()
    return _default_territories


def find_territory(
    school_name: str,
    territories: Sequence[TerritoryDefinition]
) -> str:
    """
    Resolve a base school to a territory name.

    For each territory in reference order, each member is compared to the
    upper-cased input: exact match, input contains member, member contains
    input. The first territory with a hit wins; no hit gives
    UNASSIGNED_TERRITORY.

    This is a full scan over territories x members on every call. At the
    reference size (tens of lots, low hundreds of schools) it is negligible;
    if the list grows, an exact-match dict in front of the scan is the first
    thing to add (only on a miss would the substring scan run).

    Args:
        school_name: Base school as extracted
        territories: Territory reference, in priority order

    Returns:
        Territory name or UNASSIGNED_TERRITORY
    """
    if not school_name:
        return UNASSIGNED_TERRITORY

    wanted = school_name.upper().strip()
    if not wanted:
        return UNASSIGNED_TERRITORY

    for territory in territories:
        for member in territory.schools:
            candidate = member.upper()
            if not candidate:
                continue
            if wanted == candidate or candidate in wanted or wanted in candidate:
                return territory.name

    return UNASSIGNED_TERRITORY


def get_territory(name: str, territories: Sequence[TerritoryDefinition]) -> Optional[TerritoryDefinition]:
    """Look a territory up by its exact name."""
    return next((t for t in territories if t.name == name), None)
