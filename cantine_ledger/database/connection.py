# cantine_ledger/database/connection.py
"""
Database connection management for the canteen delivery ledger.

Provides engine creation, session management, and initialization utilities.
Defaults to a local SQLite file; any SQLAlchemy URL works through DATABASE_URL.

Core operations never reach for a global connection: they receive a Session.
The helpers here only build engines and sessions for scripts and tests.
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from cantine_ledger.utilities.common import get_project_root

# Load environment variables from .env file if present
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = get_project_root() / "data" / "cantine_ledger.db"

# Global engine instance (created lazily)
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_database_url() -> str:
    """
    Get the database connection URL.

    Priority:
    1. DATABASE_URL environment variable
    2. Local SQLite file under data/

    Returns:
        Database connection URL string
    """
    if os.getenv("DATABASE_URL"):
        return os.getenv("DATABASE_URL")

    DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DEFAULT_DB_PATH}"


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Let SQLAlchemy emit BEGIN on SQLite connections.

    The sqlite3 driver starts transactions lazily, on the first write. A
    SAVEPOINT issued before that write opens the outermost transaction,
    and releasing it commits. With the driver's own transaction handling
    off, Session.begin_nested() nests inside the session transaction.

    Must be called before the engine opens its first connection.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def get_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Get or create the SQLAlchemy engine.

    Args:
        database_url: Optional override for database URL
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine

    if _engine is None or database_url is not None:
        url = database_url or get_database_url()
        if url.startswith("sqlite"):
            _engine = enable_sqlite_savepoints(create_engine(url, echo=echo))
        else:
            _engine = create_engine(
                url,
                echo=echo,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
            )

    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Get the session factory.

    Args:
        engine: Optional engine instance (uses global if not provided)

    Returns:
        SQLAlchemy sessionmaker instance
    """
    global _SessionLocal

    if _SessionLocal is None or engine is not None:
        eng = engine or get_engine()
        _SessionLocal = sessionmaker(
            bind=eng,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    return _SessionLocal


def get_session() -> Session:
    """
    Create a new database session.

    Note: Caller is responsible for closing the session.
    For automatic cleanup, use the session_scope() context manager.
    """
    SessionLocal = get_session_factory()
    return SessionLocal()


@contextmanager
def session_scope(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            insert_delivery(session, row, territories)
            # Commits automatically on success
            # Rolls back on exception

    Args:
        session_factory: Optional factory (uses the global one if not provided)

    Yields:
        SQLAlchemy Session instance
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None, territories=None) -> None:
    """
    Create all tables defined in models.py if they don't exist.

    Args:
        engine: Optional engine instance (uses global if not provided)
        territories: Territory reference; when given and school_details is
            still empty, it is seeded with ingestion.sync_school_territories().
            Later reconciliation is left to an explicit sync.
    """
    from .models import Base, SchoolDetail

    eng = engine or get_engine()
    Base.metadata.create_all(bind=eng)

    if territories is None:
        return

    from .ingestion import sync_school_territories

    with session_scope(sessionmaker(bind=eng)) as session:
        if session.query(SchoolDetail).first() is None:
            stats = sync_school_territories(session, territories)
            logger.info(f"New store seeded with {stats['seeded']} reference schools")


def get_table_counts(session: Session) -> dict:
    """
    Get row counts for all ledger tables.

    Returns:
        Dictionary mapping table names to row counts
    """
    from .models import Base

    counts = {}
    for table in Base.metadata.sorted_tables:
        counts[table.name] = session.execute(
            select(func.count()).select_from(table)
        ).scalar_one()
    return counts


def reset_database(engine: Optional[Engine] = None, confirm: bool = False) -> bool:
    """
    Drop and recreate all tables.

    WARNING: This will delete all data!

    Args:
        engine: Optional engine instance (uses global if not provided)
        confirm: Must be True to proceed (safety check)

    Returns:
        True if reset successful, False otherwise
    """
    if not confirm:
        logger.warning("Database reset requires confirm=True")
        return False

    from .models import Base

    eng = engine or get_engine()
    Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    logger.info("Database reset: all tables recreated")
    return True
