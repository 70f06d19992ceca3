#!/usr/bin/env python3
"""
Strike Day Registry

A registered strike day zeroes that weekday in every summary and territory
roll-up of the given school year and week. Stored deliveries are untouched,
so removing the strike restores the original totals.

Usage:
    cantine-strikes add 2023-2024 12 tuesday --date 19/03/2024
    cantine-strikes remove 3
    cantine-strikes list
"""

import argparse
import logging

from cantine_ledger.database.connection import get_engine, get_session_factory, init_db, session_scope
from cantine_ledger.database.queries import add_strike, get_strikes, remove_strike
from cantine_ledger.extraction.order_parser import WEEKDAYS
from cantine_ledger.utilities.common import setup_logging

logger = logging.getLogger(__name__)


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Manage strike days")
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL (default: DATABASE_URL or local SQLite file)"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    add_parser = subparsers.add_parser("add", help="Register a strike day")
    add_parser.add_argument("school_year", help="School year, e.g. 2023-2024")
    add_parser.add_argument("week", help="ISO week number")
    add_parser.add_argument("day", choices=WEEKDAYS, help="Weekday")
    add_parser.add_argument("--date", help="Calendar date, for the record")

    remove_parser = subparsers.add_parser("remove", help="Delete a strike day")
    remove_parser.add_argument("strike_id", type=int, help="Id shown by 'list'")

    subparsers.add_parser("list", help="List strike days")

    args = parser.parse_args()
    setup_logging(args.log_level)

    engine = get_engine(args.database_url)
    init_db(engine)
    session_factory = get_session_factory(engine)

    with session_scope(session_factory) as session:
        if args.command == "add":
            strike = add_strike(session, args.school_year, args.week, args.day, args.date)
            print(f"Strike #{strike.id}: {strike.school_year} S{strike.week_number} {strike.day}")

        elif args.command == "remove":
            if not remove_strike(session, args.strike_id):
                print(f"No strike with id {args.strike_id}")
                return 1
            print(f"Strike #{args.strike_id} removed")

        else:
            strikes = get_strikes(session)
            if not strikes:
                print("No strike days registered")
            for s in strikes:
                print(f"#{s.id:<4} {s.school_year}  S{s.week_number}  {s.day:<10} {s.strike_date or ''}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
