"""
Date and time formatting for everything that touches the database.

Timestamps are written in exactly one format (TIMESTAMP_FORMAT). Rows
written by older builds may use other layouts; parse_timestamp() is the
single place that knows about them.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timedelta
from typing import Iterator, List

from focusledger.errors import ValidationError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")

# Legacy layouts still found in old databases, tried in order after
# the canonical one. %z also matches a literal "Z".
_LEGACY_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d",
)

# strptime's %f takes at most six digits
_EXTRA_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


# ── Dates ───────────────────────────────────────────────────────────────────

def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string or raise ValidationError."""
    if not isinstance(value, str):
        raise ValidationError(f"Date must be a YYYY-MM-DD string, got {value!r}")
    if not _DATE_RE.fullmatch(value):
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def shift_date(value: str, days: int) -> str:
    """Return ``value`` moved by ``days`` calendar days."""
    return format_date(parse_date(value) + timedelta(days=days))


def iter_dates(start: str, end: str) -> Iterator[str]:
    """Yield every date string from start to end inclusive."""
    current = parse_date(start)
    last = parse_date(end)
    while current <= last:
        yield format_date(current)
        current += timedelta(days=1)


def validate_range(start: str, end: str) -> None:
    if parse_date(start) > parse_date(end):
        raise ValidationError(f"Start date {start} is after end date {end}")


# ── Timestamps ──────────────────────────────────────────────────────────────

def format_timestamp(value: datetime) -> str:
    """Canonical storage form, second precision, no timezone."""
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse a stored timestamp, accepting legacy layouts.

    Values carrying an offset are converted to naive local time so they
    compare with the naive datetimes the rest of the code uses.

    Raises ValueError when nothing matches; callers scanning many rows
    are expected to skip and log the row.
    """
    if not value:
        raise ValueError("empty timestamp")
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        pass
    trimmed = _EXTRA_FRACTION_RE.sub(r"\1", value)
    for fmt in _LEGACY_FORMATS:
        try:
            parsed = datetime.strptime(trimmed, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    raise ValueError(f"unrecognised timestamp format: {value!r}")


# ── Time ranges ─────────────────────────────────────────────────────────────

def format_time_range(start_hour: int, start_min: int,
                      end_hour: int, end_min: int) -> str:
    """(9, 0, 9, 25) -> '09:00~09:25'"""
    return f"{start_hour:02d}:{start_min:02d}~{end_hour:02d}:{end_min:02d}"


def time_range_between(start: datetime, end: datetime) -> str:
    return format_time_range(start.hour, start.minute, end.hour, end.minute)


def range_start(time_range: str) -> str:
    """'09:00~09:25' -> '09:00'"""
    return time_range[:5] if len(time_range) >= 5 else ""


def range_start_hour(time_range: str) -> int:
    """'09:00~09:25' -> 9; -1 for strings that do not start with an hour."""
    head = time_range[:2]
    if len(head) == 2 and head.isdigit():
        hour = int(head)
        if 0 <= hour <= 23:
            return hour
    return -1


def dump_time_ranges(ranges: List[str]) -> str:
    return json.dumps(ranges)


def load_time_ranges(raw: str) -> List[str]:
    """
    Decode the stored JSON list of ranges.

    Malformed or legacy values decode to an empty list; the failure is
    logged but never raised.
    """
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Unparseable time_ranges value %r, treating as empty", raw)
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        logger.warning("time_ranges is not a list of strings: %r", raw)
        return []
    return value
