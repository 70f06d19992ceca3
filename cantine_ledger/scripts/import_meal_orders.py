#!/usr/bin/env python3
"""
Meal Order Import

Extracts delivery rows from weekly meal-order PDFs and stores them in the
ledger.

Documents are processed in groups of `batch_size` (default 10). Each group
is written in a single transaction, each document inside its own savepoint:
a parse or storage failure only loses its own document. If the commit of
the group fails, every document of that group is reported as failed. The
next group still runs.

Extraction (PDF reading and parsing) can run on a thread pool; storage is
always sequential, in submission order.

Usage:
    # Import every PDF of a folder
    cantine-import data/raw/commandes/

    # Import specific files, then re-sync territories
    cantine-import S12.pdf S13.pdf --sync

    # Dry run
    cantine-import data/raw/commandes/ --dry-run
"""

import argparse
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from cantine_ledger.database.connection import get_engine, get_session_factory, init_db, session_scope
from cantine_ledger.database.ingestion import StoreError, insert_deliveries, sync_school_territories
from cantine_ledger.extraction.layout import DEFAULT_LINE_TOLERANCE, read_pdf_fragments
from cantine_ledger.extraction.order_parser import DeliveryRow, ParseError, parse_pages
from cantine_ledger.extraction.school_identity import (
    TerritoryDefinition,
    get_default_territories,
    load_territories,
)
from cantine_ledger.utilities.common import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

# Document outcomes
IMPORTED = "imported"
DUPLICATE = "duplicate"
EMPTY = "empty"
FAILED = "failed"

# A document is a name plus either its pages or a callable loading them
PageSource = Union[Sequence, Callable[[], Sequence]]
Document = Tuple[str, PageSource]


def discover_pdf_files(paths: Iterable[Union[str, Path]]) -> List[Path]:
    """
    Expand files and directories into a sorted list of PDF files.

    Directories are searched recursively; non-PDF files are ignored.
    """
    found = []
    for p in paths:
        path = Path(p)
        if path.is_dir():
            found.extend(f for f in path.rglob("*") if f.is_file() and f.suffix.lower() == ".pdf")
        elif path.is_file() and path.suffix.lower() == ".pdf":
            found.append(path)
        else:
            logger.warning(f"Not a PDF file or directory: {path}")
    return sorted(set(found))


class MealOrderImporter:
    """Import meal-order documents to the ledger"""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        territories: Optional[Sequence[TerritoryDefinition]] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        workers: int = 1,
        tolerance: float = DEFAULT_LINE_TOLERANCE,
        dry_run: bool = False
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.session_factory = session_factory
        self.territories = territories if territories is not None else get_default_territories()
        self.batch_size = batch_size
        self.workers = max(1, workers)
        self.tolerance = tolerance
        self.dry_run = dry_run

    def import_pdf_files(self, paths: Iterable[Union[str, Path]]) -> Dict:
        """Import PDF files (and the PDFs under any directory given)."""
        files = discover_pdf_files(paths)
        logger.info(f"Found {len(files)} PDF file(s)")
        documents = [(f.name, lambda f=f: read_pdf_fragments(f)) for f in files]
        return self.import_documents(documents)

    def import_documents(self, documents: Iterable[Document]) -> Dict:
        """
        Import documents group by group.

        Args:
            documents: (name, pages) pairs; pages may be a zero-argument
                callable, which is then called during extraction

        Returns:
            Import statistics
        """
        stats = {
            "documents_processed": 0,
            "documents_imported": 0,
            "documents_skipped_duplicate": 0,
            "documents_empty": 0,
            "documents_failed": 0,
            "rows_inserted": 0,
            "rows_skipped": 0,
            "failures": []
        }

        documents = list(documents)
        for start in range(0, len(documents), self.batch_size):
            group = documents[start:start + self.batch_size]
            logger.info(
                f"Group {start // self.batch_size + 1}: "
                f"documents {start + 1}-{start + len(group)} of {len(documents)}"
            )
            for result in self._import_group(group):
                self._accumulate_stats(stats, result)

        return stats

    def _extract(self, document: Document) -> Dict:
        """Read and parse one document; failures are captured, not raised."""
        name, source = document
        result = {"document": name, "rows": [], "error": None}
        try:
            pages = source() if callable(source) else source
            result["rows"] = parse_pages(pages, document=name, tolerance=self.tolerance)
        except ParseError as e:
            logger.warning(f"  {name}: {e}")
            result["error"] = str(e)
        except Exception as e:
            logger.error(f"  {name}: could not be read: {e}")
            result["error"] = str(e)
        return result

    def _extract_group(self, group: List[Document]) -> List[Dict]:
        if self.workers == 1 or len(group) == 1:
            return [self._extract(d) for d in group]
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(self._extract, group))

    def _import_group(self, group: List[Document]) -> List[Dict]:
        """
        Store the rows of one group in a single transaction.

        Returns:
            One result per document, in group order
        """
        results = self._extract_group(group)

        try:
            with session_scope(self.session_factory) as session:
                for result in results:
                    if result["error"]:
                        result["outcome"] = FAILED
                        continue
                    try:
                        with session.begin_nested():
                            self._store_document(session, result["rows"], result)
                    except StoreError as e:
                        logger.error(f"  {result['document']}: rolled back: {e}")
                        result["outcome"] = FAILED
                        result["rows_inserted"] = 0
                        result["rows_skipped"] = 0
                        result["error"] = str(e)

                if self.dry_run:
                    session.rollback()
        except SQLAlchemyError as e:
            logger.error(f"  Group rolled back: {e}")
            for result in results:
                result["outcome"] = FAILED
                result["rows_inserted"] = 0
                result["rows_skipped"] = 0
                result["error"] = result["error"] or str(e)

        return results

    def _store_document(self, session, rows: List[DeliveryRow], result: Dict):
        """Insert one document's rows and classify the outcome."""
        name = result["document"]
        if not rows:
            logger.info(f"  {name}: no delivery rows")
            result["outcome"] = EMPTY
            return

        inserted, skipped = insert_deliveries(session, rows, self.territories)
        result["rows_inserted"] = inserted
        result["rows_skipped"] = skipped
        result["outcome"] = IMPORTED if inserted else DUPLICATE

        if self.dry_run:
            logger.info(f"  [DRY RUN] {name}: would insert {inserted} rows ({skipped} already stored)")
        else:
            logger.info(f"  {name}: {inserted} rows inserted, {skipped} already stored")

    def _accumulate_stats(self, stats: Dict, result: Dict):
        """Accumulate results into stats"""
        stats["documents_processed"] += 1
        stats["rows_inserted"] += result.get("rows_inserted", 0)
        stats["rows_skipped"] += result.get("rows_skipped", 0)

        outcome = result.get("outcome")
        if outcome == IMPORTED:
            stats["documents_imported"] += 1
        elif outcome == DUPLICATE:
            stats["documents_skipped_duplicate"] += 1
        elif outcome == EMPTY:
            stats["documents_empty"] += 1
        else:
            stats["documents_failed"] += 1
            stats["failures"].append({
                "document": result.get("document"),
                "error": result.get("error")
            })


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Import weekly meal-order PDFs into the delivery ledger"
    )
    parser.add_argument(
        "paths",
        nargs="+",
        help="PDF files or directories containing them"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Documents per transaction (default: {DEFAULT_BATCH_SIZE})"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Parallel extraction threads (default: 1)"
    )
    parser.add_argument(
        "--territories",
        type=Path,
        help="Territory reference YAML (default: config/territories.yaml)"
    )
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Re-sync school territories after the import"
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL (default: DATABASE_URL or local SQLite file)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without database changes"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    territories = load_territories(args.territories) if args.territories else get_default_territories()

    engine = get_engine(args.database_url)
    init_db(engine, None if args.dry_run else territories)
    session_factory = get_session_factory(engine)

    importer = MealOrderImporter(
        session_factory=session_factory,
        territories=territories,
        batch_size=args.batch_size,
        workers=args.workers,
        dry_run=args.dry_run
    )

    print(f"Database: {engine.url.render_as_string(hide_password=True)}")
    print(f"Dry run: {args.dry_run}")
    print()

    stats = importer.import_pdf_files(args.paths)

    if args.sync and not args.dry_run:
        with session_scope(session_factory) as session:
            sync_school_territories(session, territories)

    print(f"\n{'='*60}")
    print(f"IMPORT {'PREVIEW' if args.dry_run else 'COMPLETE'}")
    print(f"{'='*60}")
    print(f"Documents processed: {stats['documents_processed']}")
    print(f"Documents imported: {stats['documents_imported']}")
    print(f"Documents skipped (duplicate): {stats['documents_skipped_duplicate']}")
    print(f"Documents without rows: {stats['documents_empty']}")
    print(f"Rows inserted: {stats['rows_inserted']}")
    print(f"Rows skipped (already stored): {stats['rows_skipped']}")

    if stats['failures']:
        print(f"\nFailures: {len(stats['failures'])}")
        for f in stats['failures'][:10]:
            print(f"  - {f['document']}: {f['error']}")

    if args.dry_run:
        print("\n[DRY RUN - no database changes made]")

    return 1 if stats['failures'] else 0


if __name__ == "__main__":
    raise SystemExit(main())
