"""
Fiscal Calendar — date arithmetic for the federal fiscal year.

A fiscal year is designated by the calendar year in which it ends: FY2024
runs from October 1, 2023 through September 30, 2024 (31 U.S.C. §1102).

Every function accepts ``datetime.date`` or ``datetime.datetime``.  Dates are
treated as midnight; timezone-aware datetimes are compared on their own wall
clock.  Nothing here reads the system clock except ``current_fiscal_year()``
when called without an explicit ``now``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone

from utils.patterns import FISCAL_YEAR

FISCAL_YEAR_START_MONTH = 10
FISCAL_YEAR_START_DAY = 1
FISCAL_YEAR_END_MONTH = 9
FISCAL_YEAR_END_DAY = 30

MIN_FISCAL_YEAR = 1900
MAX_FISCAL_YEAR = 2200

# Fiscal quarter -> (start month, start calendar-year offset, end month, end day)
_QUARTERS = {
    1: (10, -1, 12, 31),
    2: (1, 0, 3, 31),
    3: (4, 0, 6, 30),
    4: (7, 0, 9, 30),
}

_SECONDS_PER_DAY = 86400


def to_naive_datetime(value: date | datetime) -> datetime:
    """Dates become midnight; aware datetimes keep their wall clock and drop tzinfo."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    return datetime(value.year, value.month, value.day)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def fiscal_year_of(value: date | datetime) -> int:
    """Fiscal year containing ``value`` (Oct-Dec roll into the next year)."""
    if value.month >= FISCAL_YEAR_START_MONTH:
        return value.year + 1
    return value.year


def fiscal_year_start(fiscal_year: int) -> datetime:
    """October 1 of the prior calendar year, 00:00."""
    return datetime(fiscal_year - 1, FISCAL_YEAR_START_MONTH, FISCAL_YEAR_START_DAY)


def fiscal_year_end(fiscal_year: int) -> datetime:
    """September 30 of the fiscal year, 23:59:59.999."""
    return datetime(fiscal_year, FISCAL_YEAR_END_MONTH, FISCAL_YEAR_END_DAY,
                    23, 59, 59, 999000)


def fiscal_year_start_date(fiscal_year: int) -> date:
    return fiscal_year_start(fiscal_year).date()


def fiscal_year_end_date(fiscal_year: int) -> date:
    return fiscal_year_end(fiscal_year).date()


def is_date_in_fiscal_year(value: date | datetime, fiscal_year: int) -> bool:
    moment = to_naive_datetime(value)
    return fiscal_year_start(fiscal_year) <= moment <= fiscal_year_end(fiscal_year)


def days_in_fiscal_year(fiscal_year: int) -> int:
    """365, or 366 when the fiscal year contains February 29."""
    return (fiscal_year_end_date(fiscal_year) - fiscal_year_start_date(fiscal_year)).days + 1


def days_remaining(value: date | datetime) -> int:
    """Days left in the fiscal year containing ``value``.

    Partial days round up, so September 30 itself still counts as one day
    remaining.  Never negative.
    """
    moment = to_naive_datetime(value)
    delta = fiscal_year_end(fiscal_year_of(moment)) - moment
    return max(0, math.ceil(delta.total_seconds() / _SECONDS_PER_DAY))


def days_elapsed(value: date | datetime) -> int:
    """Days since October 1 of the fiscal year containing ``value``.

    Midnight on October 1 is day 0; partial days round up.  Never negative.
    """
    moment = to_naive_datetime(value)
    delta = moment - fiscal_year_start(fiscal_year_of(moment))
    return max(0, math.ceil(delta.total_seconds() / _SECONDS_PER_DAY))


def fiscal_quarter(value: date | datetime) -> int:
    """Fiscal quarter 1..4 (Q1 = Oct-Dec, Q2 = Jan-Mar, Q3 = Apr-Jun, Q4 = Jul-Sep)."""
    month = value.month
    if month >= 10:
        return 1
    if month <= 3:
        return 2
    if month <= 6:
        return 3
    return 4


def quarter_dates(fiscal_year: int, quarter: int) -> tuple[date, date]:
    """First and last calendar day of a fiscal quarter.

    Raises:
        ValueError: If ``quarter`` is not 1..4
    """
    if quarter not in _QUARTERS:
        raise ValueError(f"Fiscal quarter must be 1-4, got {quarter!r}")
    start_month, year_offset, end_month, end_day = _QUARTERS[quarter]
    year = fiscal_year + year_offset
    return date(year, start_month, 1), date(year, end_month, end_day)


def overlap_days(start: date | datetime, end: date | datetime, fiscal_year: int) -> int:
    """Calendar days of ``[start, end]`` (inclusive) that fall inside ``fiscal_year``."""
    lo = max(_as_date(start), fiscal_year_start_date(fiscal_year))
    hi = min(_as_date(end), fiscal_year_end_date(fiscal_year))
    if hi < lo:
        return 0
    return (hi - lo).days + 1


def fiscal_years_spanned(start: date | datetime, end: date | datetime) -> list[int]:
    """Every fiscal year touched by ``[start, end]``, ascending."""
    first, last = fiscal_year_of(start), fiscal_year_of(end)
    return list(range(first, last + 1))


def format_fiscal_year(fiscal_year: int) -> str:
    """Display string such as "FY2024"."""
    return f"FY{fiscal_year}"


def format_fiscal_year_range(fiscal_year: int) -> str:
    """Display string such as "FY2024 (Oct 1, 2023 - Sep 30, 2024)"."""
    start = fiscal_year_start_date(fiscal_year)
    end = fiscal_year_end_date(fiscal_year)
    return (f"{format_fiscal_year(fiscal_year)} "
            f"({start:%b} {start.day}, {start.year} - {end:%b} {end.day}, {end.year})")


def format_fiscal_year_span(first: int, last: int) -> str:
    """Display string such as "FY2024-FY2026"; a single year collapses to "FY2024"."""
    if first == last:
        return format_fiscal_year(first)
    return f"{format_fiscal_year(first)}-{format_fiscal_year(last)}"


def is_valid_fiscal_year(fiscal_year: object) -> bool:
    """True for integers in 1900..2200 (bools excluded)."""
    return (isinstance(fiscal_year, int) and not isinstance(fiscal_year, bool)
            and MIN_FISCAL_YEAR <= fiscal_year <= MAX_FISCAL_YEAR)


def parse_fiscal_year(text: str | int | None) -> int | None:
    """Extract a fiscal year from "FY2024", "FY 2024", "2024" or an int."""
    if text is None:
        return None
    if isinstance(text, int) and not isinstance(text, bool):
        return text if is_valid_fiscal_year(text) else None
    match = FISCAL_YEAR.search(str(text))
    if not match:
        return None
    return int(match.group(2))


def current_fiscal_year(now: date | datetime | None = None) -> int:
    """Fiscal year of ``now`` (UTC wall clock when omitted)."""
    return fiscal_year_of(now or datetime.now(timezone.utc))
