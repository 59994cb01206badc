"""
Schedule impact analysis

Works out which other scheduled jobs are affected when a job is cancelled or
moved, so the caller can show a warning before confirming the action.

Selection heuristic: jobs of the same technician that start on a calendar day
the target occupies (every segment day for multi-day jobs), as observed in the
provider's zone. The stops directly before and after the target on its first
day are the route neighbours whose travel windows assumed it.

Analysis is advisory and read-only: nothing here mutates or blocks.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from ...config import DEFAULT_JOB_DURATION_MINUTES
from ...shared.timestamps import to_instant, to_iso, utc_now
from ..scheduling.multiday import get_multi_day_dates, job_is_multi_day
from ..scheduling.timezones import detect_timezone, is_same_day_in_timezone, to_local

logger = logging.getLogger(__name__)

ROUTE_STATUSES = ("scheduled", "in_progress")

AFFECTED_REASONS = {
    "previous_stop": "Scheduled right before this job; the route from that stop changes",
    "next_stop": "Scheduled right after this job; its arrival window assumed this stop",
    "multi_day_overlap": "Shares a working day with this multi-day job",
    "same_day_route": "On the same day's route",
}


def _job_start(job: Any) -> Optional[datetime]:
    return to_instant(job.scheduled_time or job.scheduled_date)


def _job_summary(job: Any) -> dict:
    return {
        "id": job.id,
        "title": job.title or job.description,
        "customer": job.customer_name,
        "time": to_iso(job.scheduled_time or job.scheduled_date),
        "status": job.status,
    }


def _overall_severity(warnings: list[dict]) -> str:
    if any(w["severity"] == "high" for w in warnings):
        return "high"
    if any(w["severity"] == "medium" for w in warnings):
        return "medium"
    return "low"


def _empty_impact(summary: str) -> dict:
    return {
        "warnings": [],
        "affectedJobs": [],
        "routeImpact": {
            "hasImpact": False,
            "previousJob": None,
            "nextJob": None,
            "gapCreated": False,
            "estimatedTimeRecovered": 0,
        },
        "severity": "none",
        "summary": summary,
        "sameDayJobCount": 0,
        "targetDate": None,
    }


def analyze_cancellation_impact(
    target_job: Any,
    all_jobs: Optional[list],
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Analyze the impact of cancelling or rescheduling a job.

    Args:
        target_job: The job being cancelled/rescheduled
        all_jobs: All jobs for the provider
        timezone: Zone in which calendar days are compared
        now: Reference instant for the "scheduled today" warning

    Returns:
        dict: warnings, affectedJobs ([{job, reason, message}]), routeImpact,
              severity, summary, sameDayJobCount, targetDate
    """
    if target_job is None or all_jobs is None:
        return _empty_impact("No impact detected")

    target_start = _job_start(target_job)
    if target_start is None:
        return _empty_impact("Job is not scheduled")

    tz = timezone or target_job.scheduled_timezone or detect_timezone()
    now = to_instant(now) or utc_now()

    first_day = to_local(target_start, tz).date().isoformat()
    is_multi_day = job_is_multi_day(target_job)
    occupied_days = {first_day}
    if is_multi_day:
        occupied_days.update(get_multi_day_dates(target_job.multi_day_schedule))

    candidates = []
    for job in all_jobs:
        if job.id == target_job.id or job.status not in ROUTE_STATUSES:
            continue
        if target_job.assigned_tech_id and job.assigned_tech_id != target_job.assigned_tech_id:
            continue
        start = _job_start(job)
        if start is None:
            continue
        day = to_local(start, tz).date().isoformat()
        if day in occupied_days:
            candidates.append((start, day, job))

    candidates.sort(key=lambda item: item[0])

    first_day_stops = [(start, job) for start, day, job in candidates if day == first_day]
    previous_job = next(
        (job for start, job in reversed(first_day_stops) if start < target_start), None
    )
    next_job = next((job for start, job in first_day_stops if start > target_start), None)

    affected_jobs = []
    for start, day, job in candidates:
        if job is previous_job:
            reason = "previous_stop"
        elif job is next_job:
            reason = "next_stop"
        elif day != first_day:
            reason = "multi_day_overlap"
        else:
            reason = "same_day_route"
        affected_jobs.append(
            {"job": _job_summary(job), "reason": reason, "message": AFFECTED_REASONS[reason]}
        )

    has_route_impact = bool(previous_job or next_job)
    route_impact = {
        "hasImpact": has_route_impact,
        "previousJob": _job_summary(previous_job) if previous_job else None,
        "nextJob": _job_summary(next_job) if next_job else None,
        "gapCreated": bool(previous_job and next_job),
        "estimatedTimeRecovered": (
            (target_job.estimated_duration or DEFAULT_JOB_DURATION_MINUTES)
            if has_route_impact
            else 0
        ),
    }

    warnings = []
    if is_multi_day:
        blocked_dates = get_multi_day_dates(target_job.multi_day_schedule)
        warnings.append(
            {
                "type": "multi_day",
                "severity": "warning",
                "message": (
                    f"This is a multi-day job spanning {len(blocked_dates)} days. "
                    "Cancelling will free up all blocked days."
                ),
                "affectedDates": blocked_dates,
            }
        )

    if is_same_day_in_timezone(target_start, now, tz):
        warnings.append(
            {
                "type": "same_day",
                "severity": "high",
                "message": "This job is scheduled for today. Cancelling may disrupt your current route.",
            }
        )

    if len(candidates) > 1:
        warnings.append(
            {
                "type": "route_impact",
                "severity": "medium",
                "message": f"This change affects a route with {len(candidates)} other jobs on this day.",
            }
        )

    count = len(candidates)
    summary = "Minimal impact"
    if count:
        summary = f"Affects {count} other job{'s' if count > 1 else ''} on the same day's route"
    if is_multi_day:
        summary += f" (multi-day: {target_job.multi_day_schedule.get('totalDays')} days)"

    return {
        "warnings": warnings,
        "affectedJobs": affected_jobs,
        "routeImpact": route_impact,
        "severity": _overall_severity(warnings),
        "summary": summary,
        "sameDayJobCount": count,
        "targetDate": first_day,
    }


def analyze_reschedule_impact(
    job: Any,
    new_date: Any,
    all_jobs: list,
    working_hours: Optional[dict] = None,
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Impact of moving a job to ``new_date``: what the old slot loses plus
    overlaps and day-off conflicts at the new slot.
    """
    impact = analyze_cancellation_impact(job, all_jobs, timezone=timezone, now=now)
    tz = timezone or job.scheduled_timezone or detect_timezone()

    new_start = to_instant(new_date)
    if new_start is None:
        raise ValueError("A new date is required to analyze a reschedule")

    duration = timedelta(minutes=job.estimated_duration or DEFAULT_JOB_DURATION_MINUTES)
    new_end = new_start + duration

    new_day_jobs = []
    conflicts = []
    for other in all_jobs:
        if other.id == job.id or other.status in ("cancelled", "completed"):
            continue
        other_start = _job_start(other)
        if other_start is None or not is_same_day_in_timezone(other_start, new_start, tz):
            continue
        new_day_jobs.append(other)

        other_end = other_start + timedelta(
            minutes=other.estimated_duration or DEFAULT_JOB_DURATION_MINUTES
        )
        if new_start < other_end and other_start < new_end:
            overlap = min(new_end, other_end) - max(new_start, other_start)
            conflicts.append(
                {"job": _job_summary(other), "overlapMinutes": int(overlap.total_seconds() // 60)}
            )

    warnings = list(impact["warnings"])
    day_name = to_local(new_start, tz).strftime("%A").lower()
    day_config = (working_hours or {}).get(day_name) or {}
    working_hours_conflict = day_config.get("enabled") is False
    if working_hours_conflict:
        warnings.append(
            {"type": "day_off", "severity": "high", "message": f"{day_name} is configured as a day off."}
        )

    severity = impact["severity"]
    if warnings:
        severity = _overall_severity(warnings)

    return {
        **impact,
        "warnings": warnings,
        "severity": severity,
        "newDateConflicts": conflicts,
        "newDayJobCount": len(new_day_jobs),
        "hasConflicts": bool(conflicts),
        "workingHoursConflict": working_hours_conflict,
        "recommendation": (
            "Consider choosing a different time to avoid conflicts"
            if conflicts
            else "New time slot is available"
        ),
    }


def get_impact_display_summary(impact: Optional[dict]) -> dict:
    """Title, message and bullet points for a confirmation dialog"""
    if not impact:
        return {
            "title": "Confirm Action",
            "message": "No significant impact detected.",
            "bulletPoints": [],
            "severity": "low",
        }

    bullet_points = []
    count = impact.get("sameDayJobCount", 0)
    if count > 0:
        bullet_points.append(f"{count} other job{'s' if count > 1 else ''} on this day's route")

    route_impact = impact.get("routeImpact") or {}
    if route_impact.get("gapCreated"):
        bullet_points.append("This will create a gap in your route")

    recovered = route_impact.get("estimatedTimeRecovered") or 0
    if recovered > 0:
        hours, minutes = divmod(recovered, 60)
        time_str = f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
        bullet_points.append(f"~{time_str} will be freed up")

    for warning in impact.get("warnings", []):
        if warning["type"] == "multi_day":
            bullet_points.append(
                f"Multi-day job: {len(warning.get('affectedDates') or []) or 'multiple'} days affected"
            )
        elif warning["type"] == "same_day":
            bullet_points.append("This job is scheduled for today")

    severity = impact.get("severity", "low")
    titles = {"high": "Warning: Significant Impact", "medium": "Notice: Route Impact"}

    return {
        "title": titles.get(severity, "Confirm Action"),
        "message": impact.get("summary", ""),
        "bulletPoints": bullet_points,
        "severity": severity,
    }


def suggest_route_reoptimization(cancelled_job: Any, remaining_jobs: Optional[list]) -> dict:
    if not remaining_jobs or len(remaining_jobs) < 2:
        return {"shouldReoptimize": False, "reason": "Not enough jobs to optimize"}

    should = len(remaining_jobs) >= 3
    return {
        "shouldReoptimize": should,
        "reason": (
            "Consider re-optimizing your route for better efficiency"
            if should
            else "Route is simple enough, no re-optimization needed"
        ),
        "potentialSavings": "10-20 minutes" if should else None,
        "jobCount": len(remaining_jobs),
    }
