"""
Test fixtures for the canteen delivery ledger.

Every test gets a fresh in-memory SQLite database. StaticPool keeps the
single connection alive so that all sessions (and extraction threads) see
the same tables.

Usage:
    pytest tests/ -v
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cantine_ledger.database.connection import enable_sqlite_savepoints, init_db
from cantine_ledger.extraction.order_parser import DeliveryRow
from cantine_ledger.extraction.school_identity import TerritoryDefinition


# --- Database Fixtures ---

@pytest.fixture
def engine():
    """In-memory SQLite engine with all ledger tables created."""
    eng = enable_sqlite_savepoints(create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """
    A session on the test database.

    Usage:
        def test_something(session):
            insert_delivery(session, row, territories)
            assert session.query(Delivery).count() == 1
    """
    s = session_factory()
    yield s
    s.close()


# --- Reference Data Fixtures ---

@pytest.fixture
def territories():
    """Small territory reference: two lots, two schools each."""
    return [
        TerritoryDefinition(lot=1, name="NORTH", schools=("SCHOOL ALPHA", "BRANLY")),
        TerritoryDefinition(lot=2, name="SOUTH", schools=("SCHOOL BETA", "STURM")),
    ]


@pytest.fixture
def make_row():
    """
    Factory for delivery rows with sensible defaults.

    Usage:
        row = make_row(monday=12, week_number="13")
    """
    def factory(**overrides):
        values = {
            "base_school": "SCHOOL ALPHA",
            "school_type": "SCHOOL ALPHA ELEMENTARY",
            "regime": "STANDARD",
            "week_number": "12",
            "school_year": "2023-2024",
            "monday": 12,
            "tuesday": 8,
            "thursday": 0,
            "friday": 15,
            "document_date": "18/3/2024",
        }
        values.update(overrides)
        values.setdefault(
            "total",
            values["monday"] + values["tuesday"] + values["thursday"] + values["friday"]
        )
        values.setdefault("document_id", f"doc_{values['base_school'].replace(' ', '-')}_{values['week_number']}")
        return DeliveryRow(**values)
    return factory


# --- Document Fixtures ---

HEADER = "Lieu de prise de repas Régime Lundi Mardi Jeudi Vendredi"


def order_lines(body, week="12", date="18/03/2024", header=HEADER):
    """Lines of a minimal weekly order document."""
    return [
        f"Commande semaine {week} du {date}",
        header,
        *body,
        "Totaux tous lieux confondus 100 100 100 100",
    ]


def lines_to_page(lines, top=800.0, step=14.0):
    """
    Positioned fragments reproducing `lines`, one fragment per word.

    Words are placed left to right, lines top to bottom, so that layout
    reconstruction gives back the same lines.
    """
    fragments = []
    for i, line in enumerate(lines):
        y = top - i * step
        for j, word in enumerate(line.split()):
            fragments.append((40.0 + j * 30.0, y, word))
    return fragments


@pytest.fixture
def order_document():
    """
    Factory for (name, pages) documents.

    Usage:
        doc = order_document("S12.pdf", ["SCHOOL ALPHA ELEMENTARY STANDARD 12 8 0 15"])
    """
    def factory(name, body, week="12", date="18/03/2024"):
        return name, [lines_to_page(order_lines(body, week=week, date=date))]
    return factory
