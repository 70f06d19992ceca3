#!/usr/bin/env python3
"""
School Territory Sync

Reconciles school_details with the territory reference:
1. Schools listed in config/territories.yaml get their lot
2. Schools seen in deliveries but never assigned are resolved by name
3. Canteen reference territories (optionally reloaded from CSV) win last

Usage:
    cantine-sync-territories
    cantine-sync-territories --canteens data/raw/cantines.csv
    cantine-sync-territories --assign "GUTENBERG" "N2R : Neudorf, 2 Rives"
    cantine-sync-territories --list
"""

import argparse
import logging
from pathlib import Path

from cantine_ledger.database.connection import get_engine, get_session_factory, init_db, session_scope
from cantine_ledger.database.ingestion import (
    apply_canteen_reference,
    sync_school_territories,
    update_school_territory,
)
from cantine_ledger.database.queries import get_schools_config
from cantine_ledger.extraction.school_identity import get_default_territories, load_territories
from cantine_ledger.utilities.common import load_canteen_reference_csv, setup_logging

logger = logging.getLogger(__name__)


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Synchronize school territories with the reference"
    )
    parser.add_argument(
        "--territories",
        type=Path,
        help="Territory reference YAML (default: config/territories.yaml)"
    )
    parser.add_argument(
        "--canteens",
        type=Path,
        help="Canteen reference CSV to load before syncing"
    )
    parser.add_argument(
        "--assign",
        nargs=2,
        metavar=("SCHOOL", "TERRITORY"),
        help="Set one school's territory instead of syncing"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print school territories instead of syncing"
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL (default: DATABASE_URL or local SQLite file)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    engine = get_engine(args.database_url)
    init_db(engine)
    session_factory = get_session_factory(engine)

    if args.list:
        with session_scope(session_factory) as session:
            for school in get_schools_config(session):
                print(f"{school['territory']:<40} {school['school_name']}")
        return 0

    if args.assign:
        school_name, territory = args.assign
        with session_scope(session_factory) as session:
            if not update_school_territory(session, school_name, territory):
                print(f"Unknown school: {school_name}")
                return 1
        print(f"{school_name} -> {territory}")
        return 0

    territories = load_territories(args.territories) if args.territories else get_default_territories()

    with session_scope(session_factory) as session:
        if args.canteens:
            apply_canteen_reference(session, load_canteen_reference_csv(args.canteens))
        stats = sync_school_territories(session, territories)

    print(f"\n{'='*60}")
    print("TERRITORY SYNC COMPLETE")
    print(f"{'='*60}")
    print(f"Reference schools seeded: {stats['seeded']}")
    print(f"Orphan schools resolved: {stats['orphans_resolved']}")
    print(f"Canteen overrides applied: {stats['overrides_applied']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
