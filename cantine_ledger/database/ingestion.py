# cantine_ledger/database/ingestion.py
"""
Idempotent persistence of extracted delivery rows and school territories.

A delivery that already exists under its natural key is never modified:
re-scanning a document must not clobber corrections made since the first
import. Schools get a school_details row the first time they are seen.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cantine_ledger.extraction.order_parser import DeliveryRow
from cantine_ledger.extraction.school_identity import (
    UNASSIGNED_TERRITORY,
    TerritoryDefinition,
    find_territory,
)

from .models import Canteen, Delivery, SchoolDetail

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The underlying database rejected a write."""
    pass


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"


# =============================================================================
# DELIVERIES
# =============================================================================


def find_delivery(session: Session, row: DeliveryRow):
    """Existing delivery with the same natural key, or None."""
    return (
        session.query(Delivery)
        .filter(
            Delivery.base_school == row.base_school,
            Delivery.school_type == row.school_type,
            Delivery.week_number == row.week_number,
            Delivery.school_year == row.school_year,
            Delivery.regime == row.regime,
        )
        .first()
    )


def resolve_new_school_territory(
    session: Session,
    school_name: str,
    territories: Sequence[TerritoryDefinition],
) -> str:
    """Canteen reference first, fuzzy resolution otherwise."""
    canteen = session.get(Canteen, school_name)
    if canteen is not None and canteen.territory:
        return canteen.territory
    return find_territory(school_name, territories)


def insert_delivery(
    session: Session,
    row: DeliveryRow,
    territories: Sequence[TerritoryDefinition],
) -> InsertOutcome:
    """
    Insert one delivery row unless its natural key is already present.

    When the row's base school has no school_details entry yet, its
    territory is resolved and the entry created in the same flush.

    Args:
        session: Database session (the caller owns the transaction)
        row: Extracted delivery row
        territories: Territory reference used for new schools

    Returns:
        InsertOutcome.INSERTED or InsertOutcome.SKIPPED

    Raises:
        StoreError: If the database rejects the write
    """
    try:
        if find_delivery(session, row) is not None:
            logger.debug(f"Duplicate delivery skipped: {row.school_type} S{row.week_number} {row.regime}")
            return InsertOutcome.SKIPPED

        session.add(Delivery(
            document_id=row.document_id,
            base_school=row.base_school,
            school_type=row.school_type,
            week_number=row.week_number,
            regime=row.regime,
            monday=row.monday,
            tuesday=row.tuesday,
            wednesday=0,
            thursday=row.thursday,
            friday=row.friday,
            total=row.total,
            document_date=row.document_date,
            school_year=row.school_year,
        ))

        if session.get(SchoolDetail, row.base_school) is None:
            territory = resolve_new_school_territory(session, row.base_school, territories)
            session.add(SchoolDetail(school_name=row.base_school, territory=territory))
            logger.info(f"New school {row.base_school!r} assigned to {territory!r}")

        session.flush()
    except SQLAlchemyError as e:
        raise StoreError(f"Could not store delivery for {row.school_type!r}: {e}") from e

    return InsertOutcome.INSERTED


def insert_deliveries(
    session: Session,
    rows: Iterable[DeliveryRow],
    territories: Sequence[TerritoryDefinition],
) -> Tuple[int, int]:
    """
    Insert many rows.

    Returns:
        Tuple of (inserted, skipped)
    """
    inserted = 0
    skipped = 0
    for row in rows:
        if insert_delivery(session, row, territories) is InsertOutcome.INSERTED:
            inserted += 1
        else:
            skipped += 1
    return inserted, skipped


# =============================================================================
# TERRITORIES
# =============================================================================


def _upsert_school_territory(session: Session, school_name: str, territory: str) -> None:
    detail = session.get(SchoolDetail, school_name)
    if detail is None:
        session.add(SchoolDetail(school_name=school_name, territory=territory))
    else:
        detail.territory = territory


def _apply_stored_canteen_overrides(session: Session) -> int:
    applied = 0
    for canteen in session.query(Canteen).filter(Canteen.territory.isnot(None)):
        if canteen.territory:
            _upsert_school_territory(session, canteen.school_name, canteen.territory)
            applied += 1
    return applied


def find_orphan_schools(session: Session) -> List[str]:
    """Base schools present in deliveries but missing from school_details."""
    stmt = (
        select(Delivery.base_school)
        .outerjoin(SchoolDetail, Delivery.base_school == SchoolDetail.school_name)
        .where(SchoolDetail.school_name.is_(None))
        .distinct()
        .order_by(Delivery.base_school)
    )
    return list(session.execute(stmt).scalars())


def sync_school_territories(
    session: Session,
    territories: Sequence[TerritoryDefinition],
) -> Dict[str, int]:
    """
    Reconcile school_details with the territory reference.

    1. Every statically listed school gets its lot (first lot listing it wins)
    2. Schools seen in deliveries but unknown to school_details are resolved
    3. Canteen reference territories are applied last

    Safe to call repeatedly.

    Returns:
        Counts of seeded, orphan and override rows
    """
    stats = {"seeded": 0, "orphans_resolved": 0, "overrides_applied": 0}

    try:
        seen = set()
        for territory in territories:
            for school_name in territory.schools:
                if school_name in seen:
                    continue
                seen.add(school_name)
                _upsert_school_territory(session, school_name, territory.name)
                stats["seeded"] += 1
        session.flush()

        for school_name in find_orphan_schools(session):
            session.add(SchoolDetail(
                school_name=school_name,
                territory=find_territory(school_name, territories),
            ))
            stats["orphans_resolved"] += 1
        session.flush()

        stats["overrides_applied"] = _apply_stored_canteen_overrides(session)
        session.flush()
    except SQLAlchemyError as e:
        raise StoreError(f"Territory sync failed: {e}") from e

    logger.info(
        f"Territories synced: {stats['seeded']} seeded, "
        f"{stats['orphans_resolved']} orphans, {stats['overrides_applied']} overrides"
    )
    return stats


def apply_canteen_reference(session: Session, records: Iterable[Dict[str, str]]) -> int:
    """
    Store canteen reference rows and apply their territories.

    Args:
        session: Database session
        records: Dicts with school_name, provider, territory, production_mode, ar, inox

    Returns:
        Number of canteen rows stored
    """
    count = 0
    for record in records:
        school_name = (record.get("school_name") or "").strip()
        if not school_name:
            continue

        territory = (record.get("territory") or "").strip() or None
        session.merge(Canteen(
            school_name=school_name,
            provider=record.get("provider") or None,
            territory=territory,
            production_mode=record.get("production_mode") or None,
            ar=record.get("ar") or None,
            inox=record.get("inox") or None,
        ))
        if territory:
            _upsert_school_territory(session, school_name, territory)
        session.flush()
        count += 1

    logger.info(f"Canteen reference: {count} rows applied")
    return count


def update_school_territory(session: Session, school_name: str, territory: str) -> bool:
    """
    Manually set a school's territory.

    Returns:
        True if the school exists, False otherwise
    """
    detail = session.get(SchoolDetail, school_name)
    if detail is None:
        return False
    detail.territory = territory or UNASSIGNED_TERRITORY
    session.flush()
    return True
