# cantine_ledger/database/__init__.py
"""
Database module for the canteen delivery ledger.

Provides SQLAlchemy models, connection management, ingestion and reporting queries.
"""

from .connection import get_engine, get_session, init_db, session_scope
from .ingestion import InsertOutcome, StoreError, insert_delivery, sync_school_territories
from .models import (
    Base,
    Canteen,
    Delivery,
    SchoolDetail,
    StrikeDay,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_db",
    "session_scope",
    "InsertOutcome",
    "StoreError",
    "insert_delivery",
    "sync_school_territories",
    "Base",
    "Canteen",
    "Delivery",
    "SchoolDetail",
    "StrikeDay",
]
