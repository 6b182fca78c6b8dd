"""
Date Parsing Module
Strict parsing of the three textual date formats found in the source sheets.

Only ``YYYY-MM-DD``, ``MM/DD/YYYY`` and ``DD-Mon-YYYY`` are accepted; there
is no fallback to a general-purpose parser, so locale-dependent strings such
as ``03/04/2024`` always read month-first. Parsed values are timezone-aware
datetimes at midnight UTC.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_ISO_TIME_RE = re.compile(r"^(\d{4}-\d{1,2}-\d{1,2})T")
_US_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_MON_RE = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{4})$")

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def _build(year: int, month: int, day: int) -> Optional[datetime]:
    # datetime() rejects impossible calendar dates such as Feb 30
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_date(value) -> Optional[datetime]:
    """
    Parse a source date string into a UTC-midnight datetime.

    A time component after an ISO date (``2024-03-15T13:45:00Z``) is
    ignored. Returns None (and logs a warning) for text that matches none of
    the accepted formats or names an invalid calendar date. Blank values
    return None silently.

    Examples:
        parse_date("2024-03-15")   -> 2024-03-15 00:00 UTC
        parse_date("03/15/2024")   -> 2024-03-15 00:00 UTC
        parse_date("15-mar-2024")  -> 2024-03-15 00:00 UTC
        parse_date("2024-02-30")   -> None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    text = str(value).strip()
    if not text:
        return None
    timestamp = _ISO_TIME_RE.match(text)
    if timestamp:
        text = timestamp.group(1)

    parsed = None
    match = _ISO_RE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        parsed = _build(year, month, day)
    else:
        match = _US_RE.match(text)
        if match:
            month, day, year = (int(g) for g in match.groups())
            parsed = _build(year, month, day)
        else:
            match = _MON_RE.match(text)
            if match:
                month = MONTHS.get(match.group(2).lower())
                if month:
                    parsed = _build(int(match.group(3)), month, int(match.group(1)))

    if parsed is None:
        logger.warning("Unparseable date %r", value)
    return parsed


def today_utc(as_of: datetime = None) -> datetime:
    """UTC midnight of ``as_of`` (or of the current instant)."""
    moment = as_of or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return datetime(moment.year, moment.month, moment.day, tzinfo=timezone.utc)


def days_ago(today: datetime, days: int) -> datetime:
    return today - timedelta(days=days)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from ``start`` to ``end`` (negative if end is earlier)."""
    return (end - start).total_seconds() / 86400.0


def format_date(value: Optional[datetime]) -> Optional[str]:
    """ISO ``YYYY-MM-DD`` text for a parsed date, None passes through."""
    if value is None:
        return None
    return value.strftime("%Y-%m-%d")
