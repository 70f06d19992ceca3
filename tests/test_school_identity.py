"""
Tests for school identity normalization and territory resolution.
"""

import pytest

from cantine_ledger.extraction.school_identity import (
    UNASSIGNED_TERRITORY,
    TerritoryDefinition,
    base_school_of,
    find_territory,
    get_territory,
    load_territories,
    parse_territories,
    school_type_of,
)


# =============================================================================
# BASE SCHOOL
# =============================================================================

class TestBaseSchool:
    """Tests for base_school_of() function."""

    def test_dashed_qualifier(self):
        assert base_school_of("BRANLY - MATERNELLE") == "BRANLY"

    def test_en_dash_qualifier(self):
        assert base_school_of("BRANLY – ELEMENTAIRE") == "BRANLY"

    def test_trailing_bare_qualifier(self):
        assert base_school_of("SCHOOL ALPHA ELEMENTARY") == "SCHOOL ALPHA"

    def test_parenthesized_qualifier(self):
        """Parentheses go with the qualifier, leaving no dangling '('."""
        assert base_school_of("STURM (ELEMENTAIRE)") == "STURM"

    def test_accented_qualifier(self):
        assert base_school_of("SCHWILGUE ÉLÉMENTAIRE") == "SCHWILGUE"

    def test_case_insensitive(self):
        assert base_school_of("Branly - maternelle") == "Branly"

    def test_qualifier_inside_word_kept(self):
        """Only whole words are qualifiers."""
        assert base_school_of("MATERNELLES UNIES") == "MATERNELLES UNIES"

    def test_no_qualifier_unchanged(self):
        assert base_school_of("LYCEE COUFFIGNAL") == "LYCEE COUFFIGNAL"

    def test_co_located_levels_share_base(self):
        assert base_school_of("BRANLY - MATERNELLE") == base_school_of("BRANLY ELEMENTAIRE")


class TestSchoolType:
    """Tests for school_type_of() function."""

    def test_upper_cased_and_trimmed(self):
        assert school_type_of("  Branly - Maternelle ") == "BRANLY - MATERNELLE"

    def test_none(self):
        assert school_type_of(None) == ""


# =============================================================================
# TERRITORY RESOLUTION
# =============================================================================

class TestFindTerritory:
    """Tests for find_territory() function."""

    def test_exact_match(self, territories):
        assert find_territory("SCHOOL ALPHA", territories) == "NORTH"

    def test_case_insensitive(self, territories):
        assert find_territory("school alpha", territories) == "NORTH"

    def test_input_contains_member(self, territories):
        assert find_territory("BRANLY ANNEXE", territories) == "NORTH"

    def test_member_contains_input(self, territories):
        assert find_territory("STUR", territories) == "SOUTH"

    def test_unknown_school_unassigned(self, territories):
        assert find_territory("GUTENBERG", territories) == UNASSIGNED_TERRITORY

    def test_empty_name_unassigned(self, territories):
        assert find_territory("", territories) == UNASSIGNED_TERRITORY
        assert find_territory("   ", territories) == UNASSIGNED_TERRITORY

    def test_first_territory_wins(self):
        """Reference order decides between two substring hits."""
        territories = [
            TerritoryDefinition(lot=1, name="FIRST", schools=("SCHOOL",)),
            TerritoryDefinition(lot=2, name="SECOND", schools=("SCHOOL BETA",)),
        ]
        assert find_territory("SCHOOL BETA", territories) == "FIRST"

    def test_empty_member_ignored(self):
        """An empty member would otherwise be contained in every name."""
        territories = [
            TerritoryDefinition(lot=1, name="BROKEN", schools=("",)),
            TerritoryDefinition(lot=2, name="REAL", schools=("BRANLY",)),
        ]
        assert find_territory("BRANLY", territories) == "REAL"


class TestTerritoryDefinition:
    """Tests for TerritoryDefinition membership and lookup."""

    def test_has_member_exact_only(self, territories):
        north = get_territory("NORTH", territories)
        assert north.has_member("school alpha")
        assert not north.has_member("SCHOOL")

    def test_get_unknown_territory(self, territories):
        assert get_territory("EAST", territories) is None


class TestLoadTerritories:
    """Tests for the YAML territory reference."""

    def test_parse_entries(self):
        territories = parse_territories([
            {"lot": 1, "name": "NORTH", "schools": ["SCHOOL ALPHA ", "BRANLY"]},
            {"lot": 2, "name": "EMPTY"},
        ])
        assert territories[0].schools == ("SCHOOL ALPHA", "BRANLY")
        assert territories[1].schools == ()

    def test_entry_without_name_rejected(self):
        with pytest.raises(ValueError):
            parse_territories([{"lot": 1, "schools": ["X"]}])

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "territories.yaml"
        path.write_text(
            "territories:\n"
            "  - lot: 1\n"
            "    name: NORTH\n"
            "    schools:\n"
            "      - SCHOOL ALPHA\n",
            encoding="utf-8",
        )
        territories = load_territories(path)
        assert [t.name for t in territories] == ["NORTH"]
        assert find_territory("SCHOOL ALPHA", territories) == "NORTH"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_territories(tmp_path / "nope.yaml")

    def test_default_reference(self):
        """The shipped reference lists six lots."""
        territories = load_territories()
        assert [t.lot for t in territories] == [1, 2, 3, 4, 5, 6]
        assert find_territory("LYCEE COUFFIGNAL", territories) == "N2R : Neudorf, 2 Rives"
