# cantine_ledger/database/compliance.py
"""
Completeness check of the delivery ledger against the academic calendar.

The calendar lists the ISO weeks with deliveries. Weeks before the rollover
threshold belong to the second half of the academic year, so they are
weighted `week + offset` and sort after the autumn weeks (September to
July). "Weeks due" is the prefix of that ordering up to the current week.

Per-school exceptions narrow the weeks due, e.g. a contract that ends after
week 44 keeps only the autumn weeks up to 44.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from cantine_ledger.extraction.order_parser import format_week
from cantine_ledger.utilities.common import get_config_dir, load_yaml_config

from .models import Delivery

logger = logging.getLogger(__name__)

CALENDAR_FILE = "calendar.yaml"

DEFAULT_ROLLOVER_THRESHOLD = 30
DEFAULT_ROLLOVER_OFFSET = 52


@dataclass(frozen=True)
class WeekCutoffException:
    """Schools whose name contains `school` are not due after `max_week_inclusive`."""
    school: str
    max_week_inclusive: str

    def applies_to(self, school_name: str) -> bool:
        return self.school.upper() in (school_name or "").upper()


@dataclass
class ExpectedWeekCalendar:
    """Academic delivery cadence with September-to-July rollover ordering."""
    weeks: List[str]
    rollover_threshold: int = DEFAULT_ROLLOVER_THRESHOLD
    rollover_offset: int = DEFAULT_ROLLOVER_OFFSET
    exceptions: List[WeekCutoffException] = field(default_factory=list)

    def __post_init__(self):
        self.weeks = sorted({format_week(w) for w in self.weeks}, key=self.weight)

    def weight(self, week) -> int:
        """Position of a week in the academic year."""
        number = int(week)
        return number + self.rollover_offset if number < self.rollover_threshold else number

    def weeks_due(self, current_week) -> List[str]:
        """Calendar weeks up to and including the current week."""
        limit = self.weight(current_week)
        return [w for w in self.weeks if self.weight(w) <= limit]

    def exception_for(self, school_name: str) -> Optional[WeekCutoffException]:
        return next((e for e in self.exceptions if e.applies_to(school_name)), None)

    def weeks_due_for(self, school_name: str, weeks_due: Sequence[str]) -> List[str]:
        """Apply the school's exception (if any) to the base weeks due."""
        exception = self.exception_for(school_name)
        if exception is None:
            return list(weeks_due)
        cutoff = self.weight(exception.max_week_inclusive)
        return [w for w in weeks_due if self.weight(w) <= cutoff]


@dataclass
class ComplianceRow:
    school_name: str
    percentage: int
    missing_weeks: List[str]
    expected_count: int
    valid_count: int
    is_exception: bool = False

    @property
    def is_complete(self) -> bool:
        return not self.missing_weeks

    def to_dict(self) -> dict:
        return asdict(self)


def load_calendar(config_path: Optional[Union[str, Path]] = None) -> ExpectedWeekCalendar:
    """
    Load the expected-week calendar.

    Args:
        config_path: YAML file (default: config/calendar.yaml)
    """
    path = Path(config_path) if config_path else get_config_dir() / CALENDAR_FILE
    config = load_yaml_config(path)

    exceptions = [
        WeekCutoffException(
            school=str(e["school"]),
            max_week_inclusive=format_week(e["max_week_inclusive"]),
        )
        for e in config.get("exceptions") or []
    ]

    return ExpectedWeekCalendar(
        weeks=[str(w) for w in config.get("expected_weeks") or []],
        rollover_threshold=int(config.get("rollover_threshold", DEFAULT_ROLLOVER_THRESHOLD)),
        rollover_offset=int(config.get("rollover_offset", DEFAULT_ROLLOVER_OFFSET)),
        exceptions=exceptions,
    )


def current_iso_week(today: Optional[date] = None) -> str:
    """ISO week number of today (or the given date), two digits."""
    return format_week((today or date.today()).isocalendar()[1])


def compute_compliance(
    school_name: str,
    weeks_due: Sequence,
    present_weeks: Iterable,
    is_exception: bool = False,
) -> ComplianceRow:
    """
    Compare a school's weeks on file with the weeks due.

    percentage = round(100 * |due & present| / |due|), or 100 when nothing
    is due.

    Examples:
        >>> compute_compliance("X", ["12", "13", "14"], {"12", "14"}).missing_weeks
        ['13']
    """
    due = [format_week(w) for w in weeks_due]
    present = {format_week(w) for w in present_weeks}

    missing = [w for w in due if w not in present]
    valid = len(due) - len(missing)
    # half-up rounding, same as the operators' spreadsheet
    percentage = int(100 * valid / len(due) + 0.5) if due else 100

    return ComplianceRow(
        school_name=school_name,
        percentage=percentage,
        missing_weeks=missing,
        expected_count=len(due),
        valid_count=valid,
        is_exception=is_exception,
    )


def get_present_weeks(session: Session, school_year: Optional[str] = None) -> Dict[str, Set[str]]:
    """Distinct weeks on file per base school."""
    stmt = select(Delivery.base_school, Delivery.week_number).distinct()
    if school_year:
        stmt = stmt.where(Delivery.school_year == school_year)

    present: Dict[str, Set[str]] = {}
    for base_school, week_number in session.execute(stmt):
        weeks = present.setdefault(base_school, set())
        if week_number:
            weeks.add(week_number)
    return present


def build_compliance_report(
    session: Session,
    calendar: ExpectedWeekCalendar,
    current_week=None,
    school_year: Optional[str] = None,
) -> List[ComplianceRow]:
    """
    One compliance row per school present in the ledger.

    Args:
        session: Database session
        calendar: Expected-week calendar with its exceptions
        current_week: Week to check up to (default: current ISO week)
        school_year: Only count deliveries of this school year

    Returns:
        Rows ordered by school name
    """
    week = format_week(current_week) if current_week is not None else current_iso_week()
    weeks_due = calendar.weeks_due(week)
    logger.info(f"Compliance up to S{week}: {len(weeks_due)} weeks due")

    report = []
    for school_name, present in sorted(get_present_weeks(session, school_year).items()):
        is_exception = calendar.exception_for(school_name) is not None
        report.append(compute_compliance(
            school_name,
            calendar.weeks_due_for(school_name, weeks_due),
            present,
            is_exception=is_exception,
        ))
    return report
