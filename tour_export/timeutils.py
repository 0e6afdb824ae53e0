"""Time parsing and formatting utilities."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, time, timedelta
from typing import Final


POINT_TIME_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S.%fZ"
DATE_FORMAT: Final[str] = "%Y-%m-%d"
DISPLAY_FORMAT: Final[str] = "%Y-%m-%d %H:%M"

# strptime's %f accepts 1-6 digits, exports from the tour service always carry milliseconds
_POINT_TIME_RE: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")
_DATE_RE: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_point_time(text: str) -> datetime:
    """Parse a GPX point timestamp like "2025-08-16T07:12:03.000Z".

    Args:
        text: Raw <time> element text.

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        ValueError: If the text does not match YYYY-MM-DDTHH:MM:SS.sssZ.
    """

    s = text.strip()
    if not _POINT_TIME_RE.match(s):
        raise ValueError(f"timestamp {text!r} does not match YYYY-MM-DDTHH:MM:SS.sssZ")
    return datetime.strptime(s, POINT_TIME_FORMAT).replace(tzinfo=UTC)


def parse_date(text: str) -> date:
    """Parse a calendar date in YYYY-MM-DD form.

    Raises:
        ValueError: If cannot parse.
    """

    s = text.strip()
    msg = f"invalid date {text!r}, expected YYYY-MM-DD (e.g. 2025-08-15)"
    if not _DATE_RE.match(s):
        raise ValueError(msg)
    try:
        return datetime.strptime(s, DATE_FORMAT).date()
    except ValueError as exc:
        raise ValueError(msg) from exc


def day_window(start: date, end: date) -> tuple[datetime, datetime]:
    """Convert an inclusive date range to UTC datetimes [start, end + 1 day)."""

    lo = datetime.combine(start, time.min, tzinfo=UTC)
    hi = datetime.combine(end + timedelta(days=1), time.min, tzinfo=UTC)
    return lo, hi


def format_display(dt: datetime) -> str:
    return dt.strftime(DISPLAY_FORMAT)
