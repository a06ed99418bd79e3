"""Assignment date parsing.

Portal pages show dates as "2024/12/01 23:59" or "2024年12月01日"; the sheets
keep that raw text. Anything that does not resolve to a real calendar date is
"no date" (None), never an exception.
"""

import re
from datetime import datetime, tzinfo

from src.assignment_sync.config import get_config

_DATE_RE = re.compile(
    r"^\s*(\d{4})\s*[/年.\-]\s*(\d{1,2})\s*[/月.\-]\s*(\d{1,2})\s*日?"
    r"\s*(?:[(（][^)）]*[)）])?"  # optional weekday marker, e.g. (月)
    r"\s*(?:(\d{1,2}):(\d{2})(?::(\d{2}))?)?\s*$"
)

STORAGE_FORMAT = "%Y/%m/%d %H:%M"


def parse_assignment_date(value: object, tz: tzinfo | None = None) -> datetime | None:
    """Parse a portal/sheet date string into an aware datetime.

    Args:
        value: Raw cell value; non-strings are stringified.
        tz: Zone the wall-clock text is in (defaults to the configured zone).

    Returns:
        Aware datetime, or None when the text is empty or not a valid date.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    match = _DATE_RE.match(text)
    if not match:
        return None

    year, month, day, hour, minute, second = match.groups()
    try:
        parsed = datetime(
            int(year),
            int(month),
            int(day),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
        )
    except ValueError:
        return None
    return parsed.replace(tzinfo=tz or get_config().tzinfo)


def format_assignment_date(value: datetime) -> str:
    """Format a datetime the way sheets store it ("YYYY/MM/DD HH:MM")."""
    return value.strftime(STORAGE_FORMAT)


def to_sink_due(value: datetime) -> str:
    """RFC3339 timestamp for the sink: the due calendar date at UTC midnight."""
    return f"{value.date().isoformat()}T00:00:00.000Z"
