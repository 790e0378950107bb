"""Hidroweb local timestamp helpers.

Hidroweb reports measurements as naive ``YYYY-MM-DD HH:MM:SS.0`` strings in the
station's local time. These helpers convert them to aware UTC datetimes and
back using a fixed UTC offset expressed in minutes.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Final, Optional

HIDROWEB_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
INVALID_DATE_SENTINEL: Final[str] = "1900-01-01 00:00:00.0"

_LOCAL_TIMESTAMP = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})(?:[ T](\d{2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?)?$"
)


def fixed_offset(tz_offset_minutes: int) -> timezone:
    return timezone(timedelta(minutes=tz_offset_minutes))


def parse_local_timestamp(value: Any, tz_offset_minutes: int) -> Optional[datetime]:
    """Parse a Hidroweb local timestamp into an aware UTC datetime.

    Returns ``None`` for empty or malformed input, including impossible
    calendar values such as month 13.
    """

    if value is None:
        return None
    text = str(value).strip()
    match = _LOCAL_TIMESTAMP.match(text)
    if not match:
        return None
    year, month, day, hour, minute, second = match.groups()
    try:
        local = datetime(
            int(year),
            int(month),
            int(day),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            tzinfo=fixed_offset(tz_offset_minutes),
        )
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


def format_hidroweb(moment: datetime, tz_offset_minutes: int) -> str:
    """Render ``moment`` in local time using the Hidroweb layout."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(fixed_offset(tz_offset_minutes))
    return local.strftime(HIDROWEB_FORMAT) + ".0"


def local_today(tz_offset_minutes: int, now: Optional[datetime] = None) -> str:
    """Return today's local date as ``YYYY-MM-DD``."""

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(fixed_offset(tz_offset_minutes)).date().isoformat()


__all__ = [
    "HIDROWEB_FORMAT",
    "INVALID_DATE_SENTINEL",
    "fixed_offset",
    "format_hidroweb",
    "local_today",
    "parse_local_timestamp",
]
