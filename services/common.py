"""
Common utilities and shared functions.
Month keys, month query windows, period presets and recovery-link parsing.
"""

import logging
import re
from datetime import date, datetime, tzinfo
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

# Period presets offered on the deals page
PERIOD_PRESETS = {
    "1m": 1,
    "3m": 3,
    "6m": 6,
}

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Map an IANA timezone name to a tzinfo; None means system local time."""
    if not name:
        return None
    return ZoneInfo(name)


def format_month_key(value: Optional[date] = None) -> str:
    """Format a date as a YYYY-MM month key (defaults to today)."""
    value = value or date.today()
    return f"{value.year:04d}-{value.month:02d}"


def parse_month_key(key: str) -> Tuple[int, int]:
    """
    Parse a YYYY-MM month key.

    Returns:
        (year, month)

    Raises:
        ValueError: if the key is malformed or the month is out of range
    """
    match = MONTH_KEY_PATTERN.match(key or "")
    if not match:
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in key: {key!r}")
    return year, month


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _local_midnight(year: int, month: int, tz: Optional[tzinfo]) -> datetime:
    if tz is None:
        # naive -> aware in the system's local zone
        return datetime(year, month, 1).astimezone()
    return datetime(year, month, 1, tzinfo=tz)


def month_bounds(key: str, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """
    Query window for a month: [first day 00:00, first day of next month 00:00).

    Both instants are timezone-aware local midnights. The end is exclusive,
    so a deal stamped exactly at the end belongs to the following month.
    """
    year, month = parse_month_key(key)
    next_year, next_month = _shift_month(year, month, 1)
    return _local_midnight(year, month, tz), _local_midnight(next_year, next_month, tz)


def previous_months(count: int, today: Optional[date] = None) -> List[str]:
    """The current month and the count-1 before it, newest first."""
    today = today or date.today()
    keys = []
    for offset in range(max(count, 0)):
        year, month = _shift_month(today.year, today.month, -offset)
        keys.append(f"{year:04d}-{month:02d}")
    return keys


def months_for_preset(
    preset: str,
    custom_month: Optional[str] = None,
    today: Optional[date] = None
) -> List[str]:
    """
    Months to render for a period preset.

    "1m", "3m" and "6m" count back from the current month; "custom" renders
    the chosen month, or nothing until one is picked.
    """
    if preset in PERIOD_PRESETS:
        return previous_months(PERIOD_PRESETS[preset], today)
    if preset == "custom":
        if custom_month:
            parse_month_key(custom_month)
            return [custom_month]
        return []
    raise ValueError(f"Unknown period preset: {preset!r}")


def month_label(key: str) -> str:
    """Human label for a month key, e.g. "February 2024"."""
    year, month = parse_month_key(key)
    return f"{MONTH_NAMES[month - 1]} {year}"


def _url_params(url: str) -> dict:
    parts = urlsplit(url or "")
    params = parse_qs(parts.query)
    # hash routes like "#/login?type=recovery" or "#type=recovery"
    fragment = parts.fragment
    if "?" in fragment:
        fragment = fragment.split("?", 1)[1]
    for name, values in parse_qs(fragment).items():
        params.setdefault(name, values)
    return params


def is_recovery_url(url: str) -> bool:
    """True when a URL carries the type=recovery marker in query or fragment."""
    values = _url_params(url).get("type", [])
    return any(v.lower() == "recovery" for v in values)


def extract_recovery_code(url: str) -> Optional[str]:
    """The one-time recovery code from a reset link, if present."""
    values = _url_params(url).get("code", [])
    return values[0] if values else None
