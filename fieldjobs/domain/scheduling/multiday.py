"""
Multi-day job schedules

A job longer than one working day is split into per-day segments that share a
recurring daily window. Segment dates are calendar dates in the provider's zone.
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

from ...config import (
    DEFAULT_WORKDAY_END,
    DEFAULT_WORKDAY_START,
    MULTI_DAY_MAX_DAYS,
    MULTI_DAY_THRESHOLD_MINUTES,
)
from .timezones import format_date_in_timezone, format_time_in_timezone

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def is_multi_day_duration(duration_minutes: Optional[int]) -> bool:
    return bool(duration_minutes) and duration_minutes > MULTI_DAY_THRESHOLD_MINUTES


def _to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _to_hhmm(total_minutes: int) -> str:
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def format_clock(hhmm: Optional[str]) -> str:
    """ "08:00" -> "8:00 AM" """
    if not hhmm:
        return ""
    total = _to_minutes(hhmm)
    hours, minutes = divmod(total, 60)
    meridiem = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{minutes:02d} {meridiem}"


def _day_window(day: date, working_hours: Optional[dict]) -> Optional[tuple[str, str]]:
    """(start, end) of the working window on ``day``, or None on a day off"""
    day_config = (working_hours or {}).get(day.strftime("%A").lower()) or {}
    if day_config.get("enabled") is False:
        return None

    start_time = day_config.get("start") or DEFAULT_WORKDAY_START
    end_time = day_config.get("end") or DEFAULT_WORKDAY_END
    if _to_minutes(end_time) <= _to_minutes(start_time):
        return None
    return start_time, end_time


def generate_day_segments(
    start_date: date,
    total_minutes: int,
    working_hours: Optional[dict] = None,
    first_day_start: Optional[str] = None,
) -> list[dict]:
    """
    Split ``total_minutes`` of work across consecutive working days.

    Args:
        start_date: First calendar day of work
        total_minutes: Total labour time
        working_hours: weekday name -> {"enabled": bool, "start": "HH:MM", "end": "HH:MM"}
        first_day_start: "HH:MM" to begin on ``start_date``; clamped to the
            window, and a time at or after the window's end moves work to the next day

    Returns:
        list[dict]: One segment per working day
    """
    segments = []
    remaining = total_minutes
    current = start_date
    day_number = 1
    days_scanned = 0

    while remaining > 0:
        if day_number > MULTI_DAY_MAX_DAYS or days_scanned > MULTI_DAY_MAX_DAYS * 7:
            logger.warning(f"⚠️ Multi-day job exceeds {MULTI_DAY_MAX_DAYS} days, truncating")
            break
        days_scanned += 1

        window = _day_window(current, working_hours)
        if window is None:
            current += timedelta(days=1)
            continue
        start_time, end_time = window

        if first_day_start and current == start_date:
            start_time = max(start_time, first_day_start, key=_to_minutes)
        available = _to_minutes(end_time) - _to_minutes(start_time)
        if available <= 0:
            current += timedelta(days=1)
            continue

        day_minutes = min(remaining, available)
        segments.append(
            {
                "date": current.isoformat(),
                "dayNumber": day_number,
                "startTime": start_time,
                "endTime": _to_hhmm(_to_minutes(start_time) + day_minutes),
                "durationMinutes": day_minutes,
                "isComplete": remaining <= available,
            }
        )

        remaining -= day_minutes
        day_number += 1
        current += timedelta(days=1)

    return segments


def create_multi_day_schedule(
    start_date: date,
    total_minutes: int,
    working_hours: Optional[dict] = None,
    first_day_start: Optional[str] = None,
) -> dict:
    segments = generate_day_segments(start_date, total_minutes, working_hours, first_day_start)
    first = segments[0] if segments else {}

    # A late first-day start does not change the recurring daily window
    daily_start = first.get("startTime")
    if first and len(segments) > 1:
        window = _day_window(date.fromisoformat(first["date"]), working_hours)
        daily_start = window[0] if window else daily_start

    return {
        "isMultiDay": len(segments) > 1,
        "totalDays": len(segments),
        "totalDurationMinutes": total_minutes,
        "startDate": first.get("date"),
        "endDate": segments[-1]["date"] if segments else None,
        "dailyStartTime": daily_start,
        "dailyEndTime": first.get("endTime"),
        "segments": segments,
    }


def job_is_multi_day(job: Any) -> bool:
    schedule = getattr(job, "multi_day_schedule", None) or {}
    return schedule.get("isMultiDay") is True or len(schedule.get("segments") or []) > 1


def get_multi_day_dates(schedule: Optional[dict]) -> list[str]:
    if not schedule or not schedule.get("segments"):
        return []
    return [segment["date"] for segment in schedule["segments"]]


def get_segment_for_date(day: Any, schedule: Optional[dict]) -> Optional[dict]:
    if not schedule or not schedule.get("segments"):
        return None
    day_str = day.isoformat() if isinstance(day, date) else str(day).split("T")[0]
    return next((s for s in schedule["segments"] if s["date"] == day_str), None)


def format_segment_display(segment: Optional[dict], total_days: int) -> str:
    """ "Day 1 of 3: 8:00 AM - 5:00 PM" """
    if not segment:
        return ""
    return (
        f"Day {segment['dayNumber']} of {total_days}: "
        f"{format_clock(segment['startTime'])} - {format_clock(segment['endTime'])}"
    )


def _format_calendar_date(day: Optional[str]) -> str:
    if not day:
        return ""
    parsed = date.fromisoformat(day)
    return f"{parsed:%b} {parsed.day}"


def format_schedule_display(job: Any, tz: str) -> str:
    """
    Human-readable schedule for a job as seen in ``tz``.

    Multi-day: "3 days • Jun 16 – Jun 18 • 8:00 AM – 5:00 PM daily"
    Slot-confirmed: "Jun 16, 2025 • 9:00 AM - 11:00 AM"
    Proposal-confirmed: "Jun 16, 2025 • 9:00 AM"
    """
    if job_is_multi_day(job):
        schedule = job.multi_day_schedule
        segments = schedule.get("segments") or []
        daily_start = schedule.get("dailyStartTime") or (segments[0]["startTime"] if segments else None)
        daily_end = schedule.get("dailyEndTime") or (segments[0]["endTime"] if segments else None)
        return (
            f"{schedule.get('totalDays', len(segments))} days • "
            f"{_format_calendar_date(schedule.get('startDate'))} – "
            f"{_format_calendar_date(schedule.get('endDate'))} • "
            f"{format_clock(daily_start)} – {format_clock(daily_end)} daily"
        )

    if not job.scheduled_time:
        return ""

    date_str = format_date_in_timezone(job.scheduled_time, tz)
    start_str = format_time_in_timezone(job.scheduled_time, tz)

    confirmed_slot = (job.scheduling or {}).get("confirmedSlot") or {}
    if confirmed_slot.get("end"):
        return f"{date_str} • {start_str} - {format_time_in_timezone(confirmed_slot['end'], tz)}"

    return f"{date_str} • {start_str}"
