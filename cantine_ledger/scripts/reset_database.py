#!/usr/bin/env python3
"""
Reset the delivery ledger database.

1. Copies the SQLite file to a timestamped backup (file databases only)
2. Drops and recreates every table
3. Verifies the empty state

Territories can then be re-seeded with `cantine-sync-territories` and the
order PDFs re-imported with `cantine-import`.

Usage:
    cantine-reset [--no-backup] [--force]
"""

import argparse
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from cantine_ledger.database.connection import (
    get_engine,
    get_session_factory,
    get_table_counts,
    init_db,
    reset_database,
    session_scope,
)
from cantine_ledger.utilities.common import get_project_root


def create_backup(engine: Engine, backup_dir: Path) -> Optional[Path]:
    """
    Copy the SQLite database file next to its siblings with a timestamp.

    Returns:
        Path to the backup, or None when the database is not a local file
    """
    db_file = engine.url.database
    if engine.url.get_backend_name() != "sqlite" or not db_file or db_file == ":memory:":
        print("  Not a SQLite file database: use the server's own backup tools")
        return None

    backup_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_file = backup_dir / f"backup_pre_reset_{timestamp}.db"

    shutil.copy2(db_file, backup_file)
    print(f"  Backup created successfully ({backup_file.stat().st_size / 1024:.1f} KB)")
    return backup_file


def main():
    parser = argparse.ArgumentParser(
        description="Reset the canteen delivery ledger database"
    )
    parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Skip backup creation (use with caution)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompt"
    )
    parser.add_argument(
        "--backup-dir",
        type=Path,
        default=get_project_root() / "data" / "backups",
        help="Directory for backup files"
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL (default: DATABASE_URL or local SQLite file)"
    )

    args = parser.parse_args()

    print("=" * 60)
    print("DATABASE RESET SCRIPT")
    print("=" * 60)

    engine = get_engine(args.database_url)
    init_db(engine)
    session_factory = get_session_factory(engine)

    with session_scope(session_factory) as session:
        counts = get_table_counts(session)

    print("\nCurrent database state:")
    for table, count in counts.items():
        if count > 0:
            print(f"  {table}: {count:,} rows")

    total_rows = sum(counts.values())
    print(f"\nTotal rows to delete: {total_rows:,}")

    if total_rows == 0:
        print("\nDatabase is already empty. Nothing to do.")
        return 0

    if not args.force:
        print("\n" + "=" * 60)
        print("WARNING: This will DELETE ALL DATA in the database!")
        print("=" * 60)
        response = input("\nType 'yes' to confirm: ")
        if response.lower() != "yes":
            print("Aborted.")
            return 1

    backup_file = None
    if not args.no_backup:
        print("\n--- Creating backup ---")
        try:
            backup_file = create_backup(engine, args.backup_dir)
        except OSError as e:
            print(f"Backup failed: {e}")
            print("Use --no-backup to proceed without backup (not recommended)")
            return 1
    else:
        print("\n--- Skipping backup (--no-backup specified) ---")

    print("\n--- Recreating tables ---")
    reset_database(engine, confirm=True)

    print("\n--- Verifying empty state ---")
    with session_scope(session_factory) as session:
        remaining = get_table_counts(session)

    if any(remaining.values()):
        print("\nVerification FAILED - some tables not empty")
        return 1

    print("\n" + "=" * 60)
    print("DATABASE RESET COMPLETE")
    print("=" * 60)
    if backup_file:
        print(f"\nBackup saved to: {backup_file}")
    print("\nRun cantine-sync-territories, then cantine-import, to repopulate.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
