"""Tests for cancellation and reschedule impact analysis."""

from datetime import datetime, timezone

import pytest

from fieldjobs.domain.lifecycle.impact import (
    analyze_cancellation_impact,
    analyze_reschedule_impact,
    get_impact_display_summary,
    suggest_route_reoptimization,
)
from fieldjobs.domain.scheduling.multiday import create_multi_day_schedule
from fieldjobs.models import Job

NEW_YORK = "America/New_York"
NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def _utc(day, hour, minute=0):
    return datetime(2025, 6, day, hour, minute, tzinfo=timezone.utc)


def _job(job_id, start, **fields):
    fields.setdefault("status", "scheduled")
    fields.setdefault("assigned_tech_id", "tech-1")
    fields.setdefault("estimated_duration", 120)
    fields.setdefault("title", f"Job {job_id}")
    return Job(id=job_id, scheduled_time=start, scheduled_date=start, **fields)


@pytest.fixture
def route():
    """Target at 11:00 New York on Jun 16 with neighbours around it."""
    target = _job("target", _utc(16, 15))
    jobs = [
        target,
        _job("before", _utc(16, 13)),  # 9:00 AM
        _job("after", _utc(16, 18)),  # 2:00 PM
        _job("evening", _utc(17, 1)),  # 9:00 PM on the 16th in New York
        _job("other-tech", _utc(16, 16), assigned_tech_id="tech-2"),
        _job("cancelled", _utc(16, 17), status="cancelled"),
        _job("next-day", _utc(17, 15)),
    ]
    return target, jobs


def _reasons(impact):
    return {affected["job"]["id"]: affected["reason"] for affected in impact["affectedJobs"]}


def test_adjacent_stops_are_affected(route):
    """Test neighbours on the same day and technician get a reason each."""
    target, jobs = route

    impact = analyze_cancellation_impact(target, jobs, timezone=NEW_YORK, now=NOW)

    assert _reasons(impact) == {
        "before": "previous_stop",
        "after": "next_stop",
        "evening": "same_day_route",
    }
    assert impact["routeImpact"]["previousJob"]["id"] == "before"
    assert impact["routeImpact"]["nextJob"]["id"] == "after"
    assert impact["routeImpact"]["gapCreated"] is True
    assert impact["routeImpact"]["estimatedTimeRecovered"] == 120
    assert impact["sameDayJobCount"] == 3
    assert impact["targetDate"] == "2025-06-16"
    assert impact["summary"] == "Affects 3 other jobs on the same day's route"
    assert impact["severity"] == "medium"
    assert all(affected["message"] for affected in impact["affectedJobs"])


def test_calendar_day_follows_zone(route):
    """Test the evening job only shares the day when seen from New York."""
    target, jobs = route

    impact = analyze_cancellation_impact(target, jobs, timezone="UTC", now=NOW)

    assert "evening" not in _reasons(impact)


def test_same_day_cancellation_is_high_severity(route):
    """Test cancelling a job scheduled for today is flagged."""
    target, jobs = route

    impact = analyze_cancellation_impact(target, jobs, timezone=NEW_YORK, now=_utc(16, 12))

    assert impact["severity"] == "high"
    assert "same_day" in [w["type"] for w in impact["warnings"]]


def test_unscheduled_job_has_no_impact():
    """Test a job without a time affects nothing."""
    job = Job(id="pending", status="pending")

    impact = analyze_cancellation_impact(job, [job], timezone=NEW_YORK, now=NOW)

    assert impact["severity"] == "none"
    assert impact["affectedJobs"] == []
    assert analyze_cancellation_impact(job, None)["summary"] == "No impact detected"


def test_lone_job_has_minimal_impact():
    """Test a job alone on its day has no affected jobs."""
    target = _job("target", _utc(16, 15))

    impact = analyze_cancellation_impact(target, [target], timezone=NEW_YORK, now=NOW)

    assert impact["summary"] == "Minimal impact"
    assert impact["routeImpact"]["hasImpact"] is False
    assert impact["severity"] == "low"


def test_multi_day_overlap():
    """Test jobs on later segment days of a multi-day job are affected."""
    target = _job(
        "target",
        _utc(16, 12),
        estimated_duration=1200,
        multi_day_schedule=create_multi_day_schedule(datetime(2025, 6, 16).date(), 1200),
    )
    later = _job("later", _utc(17, 19))

    impact = analyze_cancellation_impact(target, [target, later], timezone=NEW_YORK, now=NOW)

    assert _reasons(impact) == {"later": "multi_day_overlap"}
    multi_day = next(w for w in impact["warnings"] if w["type"] == "multi_day")
    assert multi_day["affectedDates"] == ["2025-06-16", "2025-06-17", "2025-06-18"]
    assert impact["summary"] == "Affects 1 other job on the same day's route (multi-day: 3 days)"


def test_reschedule_conflicts_and_day_off():
    """Test overlaps at the new time and a day configured as off."""
    job = _job("target", _utc(16, 15))
    busy = _job("busy", _utc(18, 15))

    impact = analyze_reschedule_impact(
        job,
        "2025-06-18T14:00:00Z",
        [job, busy],
        working_hours={"wednesday": {"enabled": False}},
        timezone=NEW_YORK,
        now=NOW,
    )

    assert impact["hasConflicts"] is True
    assert impact["newDateConflicts"][0]["job"]["id"] == "busy"
    assert impact["newDateConflicts"][0]["overlapMinutes"] == 60
    assert impact["newDayJobCount"] == 1
    assert impact["workingHoursConflict"] is True
    assert impact["severity"] == "high"
    assert impact["recommendation"] == "Consider choosing a different time to avoid conflicts"


def test_reschedule_to_free_slot():
    """Test a clear slot is reported as available."""
    job = _job("target", _utc(16, 15))

    impact = analyze_reschedule_impact(job, _utc(19, 15), [job], timezone=NEW_YORK, now=NOW)

    assert impact["hasConflicts"] is False
    assert impact["recommendation"] == "New time slot is available"


def test_reschedule_needs_a_date():
    """Test a missing new date is rejected."""
    job = _job("target", _utc(16, 15))

    with pytest.raises(ValueError):
        analyze_reschedule_impact(job, None, [job], timezone=NEW_YORK, now=NOW)


def test_display_summary(route):
    """Test the confirmation dialog text."""
    target, jobs = route
    impact = analyze_cancellation_impact(target, jobs, timezone=NEW_YORK, now=NOW)

    display = get_impact_display_summary(impact)

    assert display["title"] == "Notice: Route Impact"
    assert display["bulletPoints"] == [
        "3 other jobs on this day's route",
        "This will create a gap in your route",
        "~2h 0m will be freed up",
    ]
    assert get_impact_display_summary(None)["title"] == "Confirm Action"


def test_route_reoptimization_suggestion():
    """Test re-optimisation is only suggested for longer routes."""
    assert suggest_route_reoptimization(None, [])["shouldReoptimize"] is False
    assert suggest_route_reoptimization(None, [1, 2])["shouldReoptimize"] is False
    suggestion = suggest_route_reoptimization(None, [1, 2, 3])
    assert suggestion["shouldReoptimize"] is True
    assert suggestion["jobCount"] == 3
