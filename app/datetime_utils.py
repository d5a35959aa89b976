"""
DateTime utility functions for the application.
"""
import re
from datetime import date, datetime, timezone

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_iso_date(value):
    """
    Parse a date-like value into a date.

    Accepts a date, a datetime (time part dropped) or a 'YYYY-MM-DD' string.

    Args:
        value: date, datetime, ISO string, or anything else

    Returns:
        date: Parsed date, or None if the value can't be read as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    match = _ISO_DATE_RE.match(value.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        # e.g. 2025-02-30
        return None


def format_iso_date(value):
    """
    Format a date-like value as 'YYYY-MM-DD'.

    Returns:
        str: ISO date string, or '' if the value isn't a valid date
    """
    d = parse_iso_date(value)
    if d is None:
        return ''
    return d.isoformat()


def date_or_none_iso(value):
    """ISO string for serialization, None for missing dates."""
    d = parse_iso_date(value)
    return d.isoformat() if d else None


def utc_now():
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def utc_now_iso():
    """Current UTC time as an ISO 8601 string with a Z suffix."""
    return utc_now().isoformat().replace("+00:00", "Z")
