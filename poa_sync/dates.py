"""
Date resolution and month bucketing.

Dates are parsed strictly: a raw value that is missing, the sentinel, or not
a complete calendar date (day, month and year all present) resolves to None
and the caller holds the record for review.  No year inference is applied.
"""

import logging
from datetime import date, datetime

from dateutil import parser as date_parser

from poa_sync.errors import InvalidDateError
from poa_sync.labels import SENTINEL
from poa_sync.models import MonthSpan

log = logging.getLogger(__name__)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)

# Two defaults that differ in every component: a component dateutil had to
# fill in from the default shows up as a difference between the two parses.
_DEFAULT_A = datetime(1904, 1, 1)
_DEFAULT_B = datetime(1905, 2, 2)


def parse_date_strict(raw: str | None) -> date | None:
    """Return the calendar date in *raw*, or None if it is incomplete/invalid."""
    if raw is None:
        return None
    text = raw.strip()
    if not text or text == SENTINEL:
        return None
    try:
        a = date_parser.parse(text, default=_DEFAULT_A)
        b = date_parser.parse(text, default=_DEFAULT_B)
    except (ValueError, OverflowError) as exc:
        log.debug("Unparseable date %r: %s", raw, exc)
        return None
    if a.date() != b.date():
        log.debug("Incomplete date %r", raw)
        return None
    return a.date()


def resolve_span(start_raw: str | None, end_raw: str | None) -> MonthSpan:
    """Resolve both raw dates or raise InvalidDateError naming what failed."""
    start = parse_date_strict(start_raw)
    end = parse_date_strict(end_raw)
    missing = []
    if start is None:
        missing.append("Start Date")
    if end is None:
        missing.append("End Date")
    if missing:
        raise InvalidDateError(missing)
    if end < start:
        raise InvalidDateError(["End Date"], detail="precedes Start Date")
    return MonthSpan(start=start, end=end)


def months_between(start: date, end: date) -> list[date]:
    """First-of-month dates from start's month through end's month, inclusive."""
    months = []
    current = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    while current <= last:
        months.append(current)
        if current.month == 12:
            current = date(current.year + 1, 1, 1)
        else:
            current = date(current.year, current.month + 1, 1)
    return months


def format_month_label(d: date) -> str:
    return f"{MONTH_NAMES[d.month - 1]} - {d.year}"


def month_buckets(start: date, end: date) -> list[str]:
    """Canonical "Month - Year" labels covering [start, end]."""
    return [format_month_label(m) for m in months_between(start, end)]
