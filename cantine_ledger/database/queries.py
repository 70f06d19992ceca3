# cantine_ledger/database/queries.py
"""
Read-side queries for the canteen delivery ledger.

Listing, strike-adjusted summary per school site, and territory roll-up by
regime, plus the strike registry and school configuration helpers used by
the reporting scripts.

Filters are optional everywhere: None (or the string "all") means no filter.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd
from sqlalchemy import and_, case, exists, func, select
from sqlalchemy.orm import Session

from cantine_ledger.extraction.order_parser import WEEKDAYS, format_week
from cantine_ledger.extraction.school_identity import (
    UNASSIGNED_TERRITORY,
    TerritoryDefinition,
    get_territory,
)

from .models import Delivery, SchoolDetail, StrikeDay

logger = logging.getLogger(__name__)

# Columns allowed in get_unique_values()
UNIQUE_VALUE_COLUMNS = ("week_number", "school_year", "base_school", "school_type", "regime")


def _is_set(value) -> bool:
    return value is not None and value != "" and value != "all"


# =============================================================================
# RESULT RECORDS
# =============================================================================


@dataclass
class ListingRow:
    """A stored delivery joined with its school's territory."""
    id: int
    document_id: str
    base_school: str
    school_type: str
    week_number: Optional[str]
    regime: str
    monday: int
    tuesday: int
    wednesday: int
    thursday: int
    friday: int
    total: int
    document_date: Optional[str]
    school_year: Optional[str]
    territory: str = UNASSIGNED_TERRITORY

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SummaryRow:
    """Strike-adjusted totals for one school site."""
    base_school: str
    school_type: str
    territory: str
    nb_weeks: int
    total_mon: int = 0
    total_tue: int = 0
    total_wed: int = 0
    total_thu: int = 0
    total_fri: int = 0
    grand_total: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RegimeTotals:
    """Per-regime totals inside a territory."""
    regime: str
    mon: int = 0
    tue: int = 0
    wed: int = 0
    thu: int = 0
    fri: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TerritoryRollup:
    territory: str
    rows: List[RegimeTotals] = field(default_factory=list)

    @property
    def grand_total(self) -> int:
        return sum(r.total for r in self.rows)


# =============================================================================
# STRIKE ADJUSTMENT
# =============================================================================


def _strike_exists(day: str):
    """Correlated EXISTS: a strike covers this delivery's year/week/day."""
    return exists().where(
        StrikeDay.school_year == Delivery.school_year,
        StrikeDay.week_number == Delivery.week_number,
        StrikeDay.day == day,
    )


def _adjusted_sum(day: str):
    """SUM of a weekday column where struck days contribute zero."""
    column = getattr(Delivery, day)
    return func.coalesce(func.sum(case((_strike_exists(day), 0), else_=column)), 0)


# =============================================================================
# LISTING
# =============================================================================


def search_deliveries(
    session: Session,
    school_year: Optional[str] = None,
    week_number: Optional[str] = None,
    base_school: Optional[str] = None,
    school_type: Optional[str] = None,
    territory: Optional[str] = None,
) -> List[ListingRow]:
    """
    List deliveries with their territory.

    Args:
        school_year: Exact school year ("2023-2024")
        week_number: Exact week ("12" or 12)
        base_school: Exact base school
        school_type: Substring of the school type
        territory: Exact territory name

    Returns:
        Rows ordered by week, base school, school type
    """
    query = (
        session.query(Delivery, SchoolDetail.territory)
        .outerjoin(SchoolDetail, Delivery.base_school == SchoolDetail.school_name)
    )

    if _is_set(school_year):
        query = query.filter(Delivery.school_year == school_year)
    if _is_set(week_number):
        query = query.filter(Delivery.week_number == format_week(week_number))
    if _is_set(base_school):
        query = query.filter(Delivery.base_school == base_school)
    if _is_set(school_type):
        query = query.filter(Delivery.school_type.like(f"%{school_type}%"))
    if _is_set(territory):
        query = query.filter(SchoolDetail.territory == territory)

    query = query.order_by(Delivery.week_number, Delivery.base_school, Delivery.school_type, Delivery.id)

    return [
        ListingRow(
            id=d.id,
            document_id=d.document_id,
            base_school=d.base_school,
            school_type=d.school_type,
            week_number=d.week_number,
            regime=d.regime,
            monday=d.monday,
            tuesday=d.tuesday,
            wednesday=d.wednesday,
            thursday=d.thursday,
            friday=d.friday,
            total=d.total,
            document_date=d.document_date,
            school_year=d.school_year,
            territory=territory_name or UNASSIGNED_TERRITORY,
        )
        for d, territory_name in query.all()
    ]


# =============================================================================
# SUMMARY
# =============================================================================


def get_summary_by_school(
    session: Session,
    school_year: Optional[str] = None,
    week_number: Optional[str] = None,
    territory: Optional[str] = None,
) -> List[SummaryRow]:
    """
    Strike-adjusted totals per (base_school, school_type).

    Any (school_year, week_number, day) in strike_days contributes zero for
    every delivery of that week, whatever was stored. Wednesday is always
    reported as zero.

    Returns:
        Rows ordered by territory, base school
    """
    query = (
        session.query(
            Delivery.base_school,
            Delivery.school_type,
            SchoolDetail.territory,
            func.count(Delivery.week_number.distinct()).label("nb_weeks"),
            _adjusted_sum("monday").label("total_mon"),
            _adjusted_sum("tuesday").label("total_tue"),
            _adjusted_sum("thursday").label("total_thu"),
            _adjusted_sum("friday").label("total_fri"),
        )
        .outerjoin(SchoolDetail, Delivery.base_school == SchoolDetail.school_name)
    )

    if _is_set(school_year):
        query = query.filter(Delivery.school_year == school_year)
    if _is_set(week_number):
        query = query.filter(Delivery.week_number == format_week(week_number))
    if _is_set(territory):
        query = query.filter(SchoolDetail.territory == territory)

    query = (
        query.group_by(Delivery.base_school, Delivery.school_type, SchoolDetail.territory)
        .order_by(SchoolDetail.territory, Delivery.base_school, Delivery.school_type)
    )

    results = []
    for r in query.all():
        row = SummaryRow(
            base_school=r.base_school,
            school_type=r.school_type,
            territory=r.territory or UNASSIGNED_TERRITORY,
            nb_weeks=r.nb_weeks,
            total_mon=int(r.total_mon),
            total_tue=int(r.total_tue),
            total_wed=0,
            total_thu=int(r.total_thu),
            total_fri=int(r.total_fri),
        )
        row.grand_total = row.total_mon + row.total_tue + row.total_thu + row.total_fri
        results.append(row)
    return results


# =============================================================================
# TERRITORY ROLL-UP
# =============================================================================


def get_territory_rollup(
    session: Session,
    territory_name: str,
    territories: Sequence[TerritoryDefinition],
    school_year: Optional[str] = None,
    week_number: Optional[str] = None,
) -> TerritoryRollup:
    """
    Totals by regime for the schools statically listed in a territory.

    Membership comes from the territory reference, not from school_details.
    Struck days contribute zero; each regime's total is the sum of its
    adjusted weekday totals.

    Raises:
        ValueError: If the territory is not in the reference
    """
    definition = get_territory(territory_name, territories)
    if definition is None:
        raise ValueError(f"Unknown territory: {territory_name}")

    rollup = TerritoryRollup(territory=definition.name)

    # stored spellings of the lot's schools, matched case-insensitively
    members = [
        name for (name,) in session.query(Delivery.base_school).distinct()
        if definition.has_member(name)
    ]
    if not members:
        return rollup

    query = (
        session.query(
            Delivery.regime,
            _adjusted_sum("monday").label("mon"),
            _adjusted_sum("tuesday").label("tue"),
            _adjusted_sum("thursday").label("thu"),
            _adjusted_sum("friday").label("fri"),
        )
        .filter(Delivery.base_school.in_(members))
    )

    if _is_set(week_number):
        query = query.filter(Delivery.week_number == format_week(week_number))
    if _is_set(school_year):
        query = query.filter(Delivery.school_year == school_year)

    for r in query.group_by(Delivery.regime).order_by(Delivery.regime).all():
        totals = RegimeTotals(
            regime=r.regime,
            mon=int(r.mon),
            tue=int(r.tue),
            thu=int(r.thu),
            fri=int(r.fri),
        )
        totals.total = totals.mon + totals.tue + totals.thu + totals.fri
        rollup.rows.append(totals)

    return rollup


# =============================================================================
# FILTER OPTIONS
# =============================================================================


def get_unique_values(session: Session, column: str) -> List[str]:
    """
    Distinct non-empty values of a delivery column, or assigned territories.

    Raises:
        ValueError: For a column outside UNIQUE_VALUE_COLUMNS / 'territory'
    """
    if column == "territory":
        stmt = (
            select(SchoolDetail.territory)
            .where(SchoolDetail.territory != UNASSIGNED_TERRITORY)
            .distinct()
            .order_by(SchoolDetail.territory)
        )
        return list(session.execute(stmt).scalars())

    if column not in UNIQUE_VALUE_COLUMNS:
        raise ValueError(f"Unsupported column: {column}")

    attr = getattr(Delivery, column)
    stmt = (
        select(attr)
        .where(and_(attr.isnot(None), attr != ""))
        .distinct()
        .order_by(attr)
    )
    return list(session.execute(stmt).scalars())


# =============================================================================
# STRIKE REGISTRY
# =============================================================================


def add_strike(
    session: Session,
    school_year: str,
    week_number: str,
    day: str,
    strike_date: Optional[str] = None,
) -> StrikeDay:
    """
    Register a strike day. Stored deliveries are not modified.

    Returns:
        The new StrikeDay, or the existing one for the same year/week/day

    Raises:
        ValueError: If day is not a weekday name
    """
    day = (day or "").lower()
    if day not in WEEKDAYS:
        raise ValueError(f"Invalid strike day: {day!r}")

    week = format_week(week_number)
    existing = (
        session.query(StrikeDay)
        .filter_by(school_year=school_year, week_number=week, day=day)
        .first()
    )
    if existing:
        return existing

    strike = StrikeDay(school_year=school_year, week_number=week, day=day, strike_date=strike_date)
    session.add(strike)
    session.flush()
    logger.info(f"Strike registered: {school_year} S{week} {day}")
    return strike


def remove_strike(session: Session, strike_id: int) -> bool:
    """Delete a strike day by id. Returns False if it did not exist."""
    strike = session.get(StrikeDay, strike_id)
    if strike is None:
        return False
    session.delete(strike)
    session.flush()
    return True


def get_strikes(session: Session) -> List[StrikeDay]:
    """All strike days, most recent first."""
    return (
        session.query(StrikeDay)
        .order_by(StrikeDay.school_year.desc(), StrikeDay.week_number.desc(), StrikeDay.id)
        .all()
    )


# =============================================================================
# SCHOOL CONFIGURATION
# =============================================================================


def get_schools_config(session: Session) -> List[Dict[str, str]]:
    """Every school_details row, ordered by territory then school."""
    details = (
        session.query(SchoolDetail)
        .order_by(SchoolDetail.territory, SchoolDetail.school_name)
        .all()
    )
    return [d.to_dict() for d in details]


# =============================================================================
# EXPORT UTILITIES
# =============================================================================


def records_to_dataframe(records: Sequence) -> pd.DataFrame:
    """Tabulate result records (dataclasses, ORM rows or dicts)."""
    rows = [r if isinstance(r, dict) else r.to_dict() for r in records]
    df = pd.DataFrame(rows)
    for column in df.columns:
        # list cells (e.g. missing weeks) are flattened for CSV readers
        if df[column].map(lambda v: isinstance(v, list)).any():
            df[column] = df[column].map(lambda v: ", ".join(v) if isinstance(v, list) else v)
    return df


def export_records(records: Sequence, output_file: Union[str, Path]) -> int:
    """
    Write records to CSV or JSON, chosen by the file extension.

    Returns:
        Number of rows written

    Raises:
        ValueError: For an extension other than .csv or .json
    """
    path = Path(output_file)
    suffix = path.suffix.lower()
    if suffix not in (".csv", ".json"):
        raise ValueError(f"Unsupported export format: {path.suffix}")

    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".json":
        rows = [r if isinstance(r, dict) else r.to_dict() for r in records]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2, ensure_ascii=False)
    else:
        records_to_dataframe(records).to_csv(path, index=False, sep=";", encoding="utf-8-sig")

    logger.info(f"Exported {len(records)} rows to {path}")
    return len(records)
