"""
Timezone arithmetic for scheduling

Converts wall-clock components in an IANA zone to canonical UTC instants and
renders instants as an observer in a given zone would see them. Nothing here
depends on the host process's local zone except detect_timezone().

DST policy for create_date_in_timezone:
- A wall time inside a spring-forward gap is shifted forward by the gap length
  (02:30 on the US spring-forward day becomes 03:30 daylight time).
- A wall time inside a fall-back overlap resolves to its first occurrence
  (the earlier, pre-transition offset).
"""

import logging
import os
import re
from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import tz as dateutil_tz

from ...config import DEFAULT_TIMEZONE
from ...shared.timestamps import to_instant

logger = logging.getLogger(__name__)

US_TIMEZONES = [
    {"value": "America/New_York", "label": "Eastern Time (ET)", "abbr": "ET"},
    {"value": "America/Chicago", "label": "Central Time (CT)", "abbr": "CT"},
    {"value": "America/Denver", "label": "Mountain Time (MT)", "abbr": "MT"},
    {"value": "America/Phoenix", "label": "Arizona (MST)", "abbr": "MST"},
    {"value": "America/Los_Angeles", "label": "Pacific Time (PT)", "abbr": "PT"},
    {"value": "America/Anchorage", "label": "Alaska Time (AKT)", "abbr": "AKT"},
    {"value": "Pacific/Honolulu", "label": "Hawaii Time (HST)", "abbr": "HST"},
]

DATE_FORMATS = {
    "short": lambda d: f"{d.month}/{d.day}",
    "medium": lambda d: f"{d:%b} {d.day}, {d.year}",
    "long": lambda d: f"{d:%B} {d.day}, {d.year}",
    "full": lambda d: f"{d:%A}, {d:%B} {d.day}, {d.year}",
    "iso": lambda d: f"{d:%Y-%m-%d}",
}


def get_zone(tz: str) -> ZoneInfo:
    """Look up an IANA zone, raising ValueError for unknown names"""
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ValueError(f"Unknown timezone: {tz}")


def is_valid_timezone(tz: Any) -> bool:
    if not tz or not isinstance(tz, str):
        return False
    try:
        get_zone(tz)
        return True
    except ValueError:
        return False


def _host_timezone() -> Optional[str]:
    env_tz = os.getenv("TZ")
    if env_tz and is_valid_timezone(env_tz.lstrip(":")):
        return env_tz.lstrip(":")

    try:
        target = os.path.realpath("/etc/localtime")
    except OSError:
        return None

    if "zoneinfo/" in target:
        name = target.split("zoneinfo/", 1)[1]
        if is_valid_timezone(name):
            return name
    return None


def detect_timezone() -> str:
    """Configured default zone, else the host zone, else UTC"""
    if DEFAULT_TIMEZONE and is_valid_timezone(DEFAULT_TIMEZONE):
        return DEFAULT_TIMEZONE

    host = _host_timezone()
    if host:
        return host

    logger.warning("⚠️ Could not detect a timezone, defaulting to UTC")
    return "UTC"


def resolve_timezone(
    explicit: Optional[str] = None,
    provider_timezone: Optional[str] = None,
    detected: Optional[str] = None,
) -> str:
    """Pick the effective zone: explicit parameter, provider setting, caller's detected zone"""
    for candidate in (explicit, provider_timezone, detected):
        if is_valid_timezone(candidate):
            return candidate
        if candidate:
            logger.warning(f"⚠️ Ignoring invalid timezone '{candidate}'")
    return detect_timezone()


def create_date_in_timezone(
    year: int, month: int, day: int, hour: int, minute: int, tz: str
) -> datetime:
    """
    Build the instant whose wall clock in ``tz`` reads the given components.

    Args:
        month: 1-12

    Returns:
        Aware UTC datetime
    """
    zone = get_zone(tz)
    local = datetime(year, month, day, hour, minute, tzinfo=zone)  # fold=0: first occurrence

    if not dateutil_tz.datetime_exists(local):
        local = dateutil_tz.resolve_imaginary(local)

    return local.astimezone(timezone.utc)


def to_local(instant: Any, tz: str) -> Optional[datetime]:
    moment = to_instant(instant)
    if moment is None:
        return None
    return moment.astimezone(get_zone(tz))


def get_timezone_abbreviation(tz: str, at: Any = None) -> str:
    local = to_local(at if at is not None else datetime.now(timezone.utc), tz)
    return local.tzname() or tz


def get_timezone_offset(tz: str, at: Any = None) -> int:
    """UTC offset of ``tz`` in minutes at the given instant (now by default)"""
    local = to_local(at if at is not None else datetime.now(timezone.utc), tz)
    return int(local.utcoffset().total_seconds() // 60)


def is_same_day_in_timezone(instant1: Any, instant2: Any, tz: str) -> bool:
    first = to_local(instant1, tz)
    second = to_local(instant2, tz)
    if first is None or second is None:
        return False
    return first.date() == second.date()


def format_time_in_timezone(instant: Any, tz: str, include_timezone: bool = False) -> str:
    """Render as "9:00 AM", optionally followed by the zone abbreviation"""
    local = to_local(instant, tz)
    if local is None:
        return ""

    hour = local.hour % 12 or 12
    meridiem = "PM" if local.hour >= 12 else "AM"
    text = f"{hour}:{local.minute:02d} {meridiem}"
    if include_timezone:
        text += f" {local.tzname()}"
    return text


def format_date_in_timezone(instant: Any, tz: str, fmt: str = "medium") -> str:
    local = to_local(instant, tz)
    if local is None:
        return ""
    formatter = DATE_FORMATS.get(fmt, DATE_FORMATS["medium"])
    return formatter(local)


def format_date_time_in_timezone(instant: Any, tz: str, include_timezone: bool = False) -> str:
    """Render as "2025-06-15 09:00" in ``tz``"""
    local = to_local(instant, tz)
    if local is None:
        return ""

    text = f"{local:%Y-%m-%d %H:%M}"
    if include_timezone:
        text += f" {local.tzname()}"
    return text


def start_of_day_in_timezone(instant: Any, tz: str) -> Optional[datetime]:
    local = to_local(instant, tz)
    if local is None:
        return None
    return create_date_in_timezone(local.year, local.month, local.day, 0, 0, tz)


def end_of_day_in_timezone(instant: Any, tz: str) -> Optional[datetime]:
    local = to_local(instant, tz)
    if local is None:
        return None
    return create_date_in_timezone(local.year, local.month, local.day, 23, 59, tz)


def parse_time_of_day(time_str: str) -> Optional[tuple[int, int]]:
    """Parse "14:30" or "2:30 PM" into (hour, minute)"""
    if not time_str:
        return None

    text = time_str.strip()
    match_24 = re.match(r"^(\d{1,2}):(\d{2})$", text)
    if match_24:
        hours, minutes = int(match_24.group(1)), int(match_24.group(2))
    else:
        match_12 = re.match(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", text, re.IGNORECASE)
        if not match_12:
            return None
        hours, minutes = int(match_12.group(1)), int(match_12.group(2))
        if hours < 1 or hours > 12:
            return None
        is_pm = match_12.group(3).upper() == "PM"
        if is_pm and hours != 12:
            hours += 12
        if not is_pm and hours == 12:
            hours = 0

    if hours > 23 or minutes > 59:
        return None
    return hours, minutes


def parse_time_in_timezone(time_str: str, base: Any, tz: str) -> Optional[datetime]:
    """
    Combine a time string with the calendar day of ``base`` in ``tz``.

    ``base`` may be a date, a "YYYY-MM-DD" string or an instant (its day as seen in ``tz``).
    """
    parsed = parse_time_of_day(time_str)
    if parsed is None or base is None:
        return None

    if isinstance(base, date) and not isinstance(base, datetime):
        day = base
    elif isinstance(base, str) and re.match(r"^\d{4}-\d{2}-\d{2}$", base.strip()):
        day = date.fromisoformat(base.strip())
    else:
        local = to_local(base, tz)
        if local is None:
            return None
        day = local.date()

    return create_date_in_timezone(day.year, day.month, day.day, parsed[0], parsed[1], tz)

