"""Shared validation utilities"""

import re
from datetime import date
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def validate_timezone(tz: Optional[str]) -> Optional[str]:
    """
    Validate an IANA timezone identifier.

    Args:
        tz: Timezone name such as "America/New_York"

    Returns:
        The identifier unchanged

    Raises:
        ValueError: If the zone is unknown
    """
    if not tz:
        return tz

    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {tz}")

    return tz


def validate_time_of_day(value: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a 24-hour HH:MM time.

    Returns:
        Zero-padded "HH:MM"

    Raises:
        ValueError: If the time is malformed or out of range
    """
    if not value:
        return value

    match = re.match(r"^(\d{1,2}):(\d{2})$", value.strip())
    if not match:
        raise ValueError("Time must be in HH:MM format")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError("Time is out of range")

    return f"{hours:02d}:{minutes:02d}"


def validate_calendar_date(value: Optional[str]) -> Optional[str]:
    """
    Validate a YYYY-MM-DD calendar date.

    Raises:
        ValueError: If the date is malformed or does not exist
    """
    if not value:
        return value

    if not re.match(r"^\d{4}-\d{2}-\d{2}$", value.strip()):
        raise ValueError("Date must be in YYYY-MM-DD format")

    date.fromisoformat(value.strip())
    return value.strip()
