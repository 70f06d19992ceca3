# cantine_ledger/database/models.py
"""
SQLAlchemy ORM models for the canteen delivery ledger.

Tables:
- deliveries: one row per school site / week / regime, as read from order PDFs
- school_details: territory of every school seen so far
- strike_days: (year, week, weekday) whose deliveries count as zero
- cantines: canteen reference table (authoritative territory overrides)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cantine_ledger.extraction.school_identity import UNASSIGNED_TERRITORY

WEEKDAY_CHECK = "day IN ('monday', 'tuesday', 'wednesday', 'thursday', 'friday')"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Delivery(Base):
    """
    Meals of one regime delivered to one school site during one week.

    The total is the sum of the non-wednesday days at creation time and is
    never recomputed. Uniqueness of (base_school, school_type, week_number,
    school_year, regime) is enforced by the ingestion code, not the schema.
    """
    __tablename__ = "deliveries"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Provenance
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Identity
    base_school: Mapped[str] = mapped_column(String(255), nullable=False)
    school_type: Mapped[str] = mapped_column(String(255), nullable=False)
    week_number: Mapped[Optional[str]] = mapped_column(String(2))
    regime: Mapped[str] = mapped_column(String(50), nullable=False)

    # Counts
    monday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tuesday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wednesday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    thursday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    friday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    document_date: Mapped[Optional[str]] = mapped_column(String(10))
    school_year: Mapped[Optional[str]] = mapped_column(String(9))

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_school_week", "base_school", "week_number"),
        Index("idx_delivery_key", "base_school", "school_type", "week_number", "school_year"),
        CheckConstraint(
            "monday >= 0 AND tuesday >= 0 AND wednesday >= 0 AND thursday >= 0 AND friday >= 0",
            name="chk_counts_positive",
        ),
    )

    def __repr__(self) -> str:
        return f"<Delivery {self.school_type}/{self.school_year}/S{self.week_number}/{self.regime}: {self.total}>"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON export."""
        return {
            "id": self.id,
            "document_id": self.document_id,
            "base_school": self.base_school,
            "school_type": self.school_type,
            "week_number": self.week_number,
            "regime": self.regime,
            "monday": self.monday,
            "tuesday": self.tuesday,
            "wednesday": self.wednesday,
            "thursday": self.thursday,
            "friday": self.friday,
            "total": self.total,
            "document_date": self.document_date,
            "school_year": self.school_year,
        }


class SchoolDetail(Base):
    """Territory of a base school. Never null: unknown schools get the sentinel."""
    __tablename__ = "school_details"

    school_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    territory: Mapped[str] = mapped_column(
        String(255), nullable=False, default=UNASSIGNED_TERRITORY
    )

    def __repr__(self) -> str:
        return f"<SchoolDetail {self.school_name}: {self.territory}>"

    def to_dict(self) -> dict:
        return {"school_name": self.school_name, "territory": self.territory}


class StrikeDay(Base):
    """
    A weekday whose deliveries count as zero in every aggregate.

    Stored delivery values are left untouched; zeroing happens at query time.
    """
    __tablename__ = "strike_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    school_year: Mapped[str] = mapped_column(String(9), nullable=False)
    week_number: Mapped[str] = mapped_column(String(2), nullable=False)
    day: Mapped[str] = mapped_column(String(10), nullable=False)
    strike_date: Mapped[Optional[str]] = mapped_column(String(10))

    __table_args__ = (
        UniqueConstraint("school_year", "week_number", "day", name="uq_strike_day"),
        CheckConstraint(WEEKDAY_CHECK, name="chk_strike_weekday"),
    )

    def __repr__(self) -> str:
        return f"<StrikeDay {self.school_year}/S{self.week_number}/{self.day}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.school_year,
            "week": self.week_number,
            "day": self.day,
            "date": self.strike_date,
        }


class Canteen(Base):
    """
    Canteen reference row imported from the operator's spreadsheet.

    Its territory, when set, overrides both the static lot list and fuzzy
    resolution for the named school.
    """
    __tablename__ = "cantines"

    school_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    provider: Mapped[Optional[str]] = mapped_column(String(255))
    territory: Mapped[Optional[str]] = mapped_column(String(255))
    production_mode: Mapped[Optional[str]] = mapped_column(String(100))
    ar: Mapped[Optional[str]] = mapped_column(String(50))
    inox: Mapped[Optional[str]] = mapped_column(String(50))

    def __repr__(self) -> str:
        return f"<Canteen {self.school_name}: {self.territory}>"
