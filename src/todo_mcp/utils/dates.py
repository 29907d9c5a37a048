"""
Timestamp parsing and formatting.

Todo files store timestamps as "YYYY-MM-DD HH:MM:SS" (local wall clock);
RFC3339 strings written by other tools are accepted on read. YAML may also
hand us datetime/date objects directly when the value is unquoted.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Union

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_FORMATS = (
    TIMESTAMP_FORMAT,
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
)


def parse_timestamp(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a frontmatter timestamp.

    Accepts "YYYY-MM-DD HH:MM:SS", RFC3339 (with "Z" or an offset, optional
    fractional seconds), a bare date, or an already-parsed datetime/date.

    Returns:
        datetime (naive for local formats, aware for RFC3339 offsets),
        or None for empty values

    Raises:
        ValueError: if the string matches none of the accepted formats
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    if not text:
        return None

    for fmt in _FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        raise ValueError(f"unable to parse timestamp: {text}") from None


def format_timestamp(value: Optional[datetime]) -> str:
    """
    Format a datetime the way todo files store it; empty string for None.

    Aware values are written as RFC3339 so their offset survives a rewrite.
    """
    if value is None:
        return ""
    if value.tzinfo is not None:
        return value.isoformat()
    return value.strftime(TIMESTAMP_FORMAT)


def now() -> datetime:
    """Current local time truncated to whole seconds."""
    return datetime.now().replace(microsecond=0)


def sort_key(value: Optional[datetime]) -> float:
    """POSIX timestamp for ordering naive and aware datetimes together."""
    if value is None:
        return 0.0
    try:
        return value.timestamp()
    except (OverflowError, OSError, ValueError):
        return 0.0


def to_utc_iso(value: Optional[datetime]) -> str:
    """UTC "YYYY-MM-DDTHH:MM:SS" string (naive values are taken as local time)."""
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def daily_parts(value: datetime) -> tuple:
    """Zero-padded (YYYY, MM, DD) of the value's own calendar date."""
    return value.strftime("%Y"), value.strftime("%m"), value.strftime("%d")


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day from start to end inclusive."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
