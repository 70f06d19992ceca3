#!/usr/bin/env python3
"""
Ledger Reports

Prints (or exports to CSV / JSON) the views of the delivery ledger.

Reports:
    listing      Stored deliveries with their territory
    summary      Strike-adjusted totals per school site
    territory    Strike-adjusted totals per regime for one lot
    compliance   Weeks on file vs. the academic calendar, per school
    values       Distinct values of a column (filter options)
    counts       Row counts per table

Usage:
    cantine-report summary --year 2023-2024 --week 12
    cantine-report territory "N2R : Neudorf, 2 Rives" --year 2023-2024
    cantine-report compliance --current-week 14 -o compliance.csv
    cantine-report listing --school-type MATERNELLE -o listing.json
"""

import argparse
import logging
from pathlib import Path

import pandas as pd

from cantine_ledger.database.compliance import build_compliance_report, load_calendar
from cantine_ledger.database.connection import get_engine, get_session_factory, get_table_counts, init_db, session_scope
from cantine_ledger.database.queries import (
    UNIQUE_VALUE_COLUMNS,
    export_records,
    get_summary_by_school,
    get_territory_rollup,
    get_unique_values,
    records_to_dataframe,
    search_deliveries,
)
from cantine_ledger.extraction.school_identity import get_default_territories, load_territories
from cantine_ledger.utilities.common import setup_logging

logger = logging.getLogger(__name__)


def _add_filters(parser: argparse.ArgumentParser, territory: bool = True):
    parser.add_argument("--year", help="School year, e.g. 2023-2024")
    parser.add_argument("--week", help="ISO week number")
    if territory:
        parser.add_argument("--territory", help="Territory name")


def build_report(session, args) -> list:
    """Run the requested report and return its records."""
    if args.report == "listing":
        return search_deliveries(
            session,
            school_year=args.year,
            week_number=args.week,
            base_school=args.school,
            school_type=args.school_type,
            territory=args.territory,
        )

    if args.report == "summary":
        return get_summary_by_school(
            session,
            school_year=args.year,
            week_number=args.week,
            territory=args.territory,
        )

    if args.report == "territory":
        territories = load_territories(args.territories) if args.territories else get_default_territories()
        rollup = get_territory_rollup(
            session,
            args.name,
            territories,
            school_year=args.year,
            week_number=args.week,
        )
        print(f"{rollup.territory}: {rollup.grand_total} meals")
        return rollup.rows

    if args.report == "compliance":
        calendar = load_calendar(args.calendar)
        return build_compliance_report(
            session,
            calendar,
            current_week=args.current_week,
            school_year=args.year,
        )

    if args.report == "values":
        return [{args.column: v} for v in get_unique_values(session, args.column)]

    return [{"table": name, "rows": count} for name, count in get_table_counts(session).items()]


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Report on the delivery ledger")
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Write to this .csv or .json file instead of printing"
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL (default: DATABASE_URL or local SQLite file)"
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")

    subparsers = parser.add_subparsers(dest="report", required=True)

    listing = subparsers.add_parser("listing", help="Stored deliveries")
    _add_filters(listing)
    listing.add_argument("--school", help="Exact base school")
    listing.add_argument("--school-type", help="Substring of the school type")

    summary = subparsers.add_parser("summary", help="Totals per school site")
    _add_filters(summary)

    territory = subparsers.add_parser("territory", help="Totals per regime for a territory")
    territory.add_argument("name", help="Territory name")
    territory.add_argument("--territories", type=Path, help="Territory reference YAML")
    _add_filters(territory, territory=False)

    compliance = subparsers.add_parser("compliance", help="Missing weeks per school")
    compliance.add_argument("--year", help="Only count deliveries of this school year")
    compliance.add_argument("--current-week", help="Check up to this week (default: current ISO week)")
    compliance.add_argument("--calendar", type=Path, help="Calendar YAML (default: config/calendar.yaml)")

    values = subparsers.add_parser("values", help="Distinct values of a column")
    values.add_argument("column", choices=UNIQUE_VALUE_COLUMNS + ("territory",))

    subparsers.add_parser("counts", help="Rows per table")

    args = parser.parse_args()
    setup_logging(args.log_level)

    engine = get_engine(args.database_url)
    init_db(engine, get_default_territories())

    with session_scope(get_session_factory(engine)) as session:
        try:
            records = build_report(session, args)
        except ValueError as e:
            print(f"Error: {e}")
            return 1

    if args.output:
        count = export_records(records, args.output)
        print(f"Wrote {count} rows to {args.output}")
    elif records:
        with pd.option_context("display.max_rows", None, "display.width", 200):
            print(records_to_dataframe(records).to_string(index=False))
    else:
        print("No rows")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
