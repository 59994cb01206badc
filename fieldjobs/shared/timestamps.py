"""Ingress normalisation for timestamps.

Every timestamp that reaches the domain (ORM columns, JSON sub-records written by
older clients, request payloads) is converted here to an aware UTC ``datetime``.
Internal logic only ever compares aware UTC datetimes.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_instant(value: Any) -> Optional[datetime]:
    """
    Convert a stored timestamp to an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), dates, epoch milliseconds,
    ISO-8601 strings and platform timestamp objects exposing ``to_datetime()``.

    Returns:
        The instant, or None when the value is empty or cannot be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            try:
                parsed = date_parser.parse(text)
            except (ValueError, OverflowError):
                logger.debug(f"Unparseable timestamp string: {value!r}")
                return None
        return to_instant(parsed)

    converter = getattr(value, "to_datetime", None) or getattr(value, "ToDatetime", None)
    if callable(converter):
        try:
            return to_instant(converter())
        except (TypeError, ValueError):
            return None

    return None


def to_iso(value: Any) -> Optional[str]:
    """Render a timestamp as an ISO-8601 UTC string for JSON sub-records"""
    instant = to_instant(value)
    return instant.isoformat() if instant else None
