"""Tests for limbo detection and alerts."""

from datetime import datetime, timedelta, timezone

from fieldjobs.domain.lifecycle.limbo import (
    LIMBO_RULES,
    detect_limbo_issues,
    find_limbo_jobs,
    find_limbo_jobs_in,
    format_age,
    generate_limbo_alerts,
    get_highest_severity,
)
from fieldjobs.models import Job

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def _job(**fields):
    fields.setdefault("id", "job-1")
    fields.setdefault("title", "Deep clean")
    fields.setdefault("customer_name", "Dana")
    fields.setdefault("status", "scheduling")
    fields.setdefault("last_activity", NOW)
    fields.setdefault("created_at", NOW)
    fields.setdefault("homeowner_lookup_pending", False)
    return Job(**fields)


def _types(issues):
    return [issue["type"] for issue in issues]


def test_rule_table_order():
    """Test the rule table lists every limbo condition once."""
    assert [rule.type for rule in LIMBO_RULES] == [
        "CANCELLATION_PENDING",
        "COMPLETION_PENDING",
        "REVISION_PENDING",
        "HOMEOWNER_UNLINKED",
        "UNSCHEDULED",
        "PAST_DUE",
    ]


def test_cancellation_pending_threshold():
    """Test a cancellation request older than 48 hours is flagged."""
    stale = _job(
        status="cancellation_requested",
        cancellation_request={"requestedAt": (NOW - timedelta(hours=50)).isoformat()},
    )
    fresh = _job(
        status="cancellation_requested",
        cancellation_request={"requestedAt": (NOW - timedelta(hours=40)).isoformat()},
    )

    issues = detect_limbo_issues(stale, NOW)

    assert _types(issues) == ["CANCELLATION_PENDING"]
    assert issues[0]["severity"] == "high"
    assert issues[0]["ageFormatted"] == "2 days"
    assert detect_limbo_issues(fresh, NOW) == []


def test_completion_pending_auto_approve_countdown():
    """Test a completion waiting 6 days is flagged with about a day left."""
    stale = _job(
        status="pending_completion",
        completion={"submittedAt": (NOW - timedelta(days=6)).isoformat()},
    )
    fresh = _job(
        status="pending_completion",
        completion={"submittedAt": (NOW - timedelta(days=4)).isoformat()},
    )

    issues = detect_limbo_issues(stale, NOW)

    assert _types(issues) == ["COMPLETION_PENDING"]
    assert issues[0]["autoApproveIn"] == "1 day"
    assert detect_limbo_issues(fresh, NOW) == []


def test_past_due_excludes_terminal_states():
    """Test a date two days gone is past due unless the job is done."""
    two_days_ago = NOW - timedelta(days=2)

    issues = detect_limbo_issues(_job(status="scheduled", scheduled_date=two_days_ago), NOW)

    assert _types(issues) == ["PAST_DUE"]
    assert issues[0]["scheduledDate"] == two_days_ago.date().isoformat()
    assert detect_limbo_issues(_job(status="completed", scheduled_date=two_days_ago), NOW) == []


def test_revision_pending():
    """Test an unanswered revision request is flagged after a week."""
    job = _job(
        status="revision_requested",
        completion={"revisionRequest": {"requestedAt": (NOW - timedelta(days=8)).isoformat()}},
    )

    assert _types(detect_limbo_issues(job, NOW)) == ["REVISION_PENDING"]


def test_homeowner_unlinked_uses_last_activity():
    """Test the unlinked flag ages from last activity."""
    job = _job(homeowner_lookup_pending=True, last_activity=NOW - timedelta(days=31))

    issues = detect_limbo_issues(job, NOW)

    assert _types(issues) == ["HOMEOWNER_UNLINKED"]
    assert issues[0]["severity"] == "low"


def test_unscheduled_uses_accepted_at():
    """Test accepted jobs with no date are flagged after two weeks."""
    job = _job(status="accepted", accepted_at=NOW - timedelta(days=15))

    assert _types(detect_limbo_issues(job, NOW)) == ["UNSCHEDULED"]
    assert detect_limbo_issues(_job(status="accepted", accepted_at=NOW - timedelta(days=10)), NOW) == []


def test_missing_sub_record_time_falls_back_to_last_activity():
    """Test a request without its own timestamp ages from last activity."""
    job = _job(
        status="cancellation_requested",
        cancellation_request={},
        last_activity=NOW - timedelta(hours=72),
    )

    assert _types(detect_limbo_issues(job, NOW)) == ["CANCELLATION_PENDING"]


def test_malformed_timestamp_skips_rule():
    """Test an unparseable timestamp skips only the affected rule."""
    job = _job(
        status="cancellation_requested",
        cancellation_request={"requestedAt": "garbage"},
        homeowner_lookup_pending=True,
        last_activity=NOW - timedelta(days=40),
    )

    assert _types(detect_limbo_issues(job, NOW)) == ["HOMEOWNER_UNLINKED"]


def test_timestamp_formats_are_normalised():
    """Test epoch milliseconds and naive datetimes are read as UTC."""
    millis = int((NOW - timedelta(hours=50)).timestamp() * 1000)
    job = _job(status="cancellation_requested", cancellation_request={"requestedAt": millis})

    assert _types(detect_limbo_issues(job, NOW)) == ["CANCELLATION_PENDING"]
    assert _types(detect_limbo_issues(job, NOW.replace(tzinfo=None))) == ["CANCELLATION_PENDING"]


def test_issues_sorted_by_severity():
    """Test a job with several issues lists the most severe first."""
    job = _job(
        status="cancellation_requested",
        cancellation_request={"requestedAt": (NOW - timedelta(hours=50)).isoformat()},
        homeowner_lookup_pending=True,
        last_activity=NOW - timedelta(days=40),
    )

    issues = detect_limbo_issues(job, NOW)

    assert _types(issues) == ["CANCELLATION_PENDING", "HOMEOWNER_UNLINKED"]
    assert get_highest_severity(issues) == "high"


def test_detection_is_deterministic():
    """Test the same snapshot and clock give the same output."""
    job = _job(status="scheduled", scheduled_date=NOW - timedelta(days=3))

    assert detect_limbo_issues(job, NOW) == detect_limbo_issues(job, NOW)


def test_format_age():
    """Test day, hour and minute granularity."""
    assert format_age(timedelta(days=3, hours=5)) == "3 days"
    assert format_age(timedelta(hours=25)) == "1 day"
    assert format_age(timedelta(hours=5, minutes=59)) == "5 hours"
    assert format_age(timedelta(minutes=12)) == "12 minutes"
    assert format_age(timedelta(minutes=1)) == "1 minute"


def _stale_jobs():
    low = _job(id="low", homeowner_lookup_pending=True, last_activity=NOW - timedelta(days=31))
    medium = _job(
        id="medium",
        status="pending_completion",
        completion={"submittedAt": (NOW - timedelta(days=6)).isoformat()},
    )
    high = _job(
        id="high",
        status="cancellation_requested",
        cancellation_request={"requestedAt": (NOW - timedelta(hours=50)).isoformat()},
    )
    healthy = _job(id="healthy")
    return [low, healthy, medium, high]


def test_find_limbo_jobs_sorted_by_severity():
    """Test high comes before medium and medium before low."""
    result = find_limbo_jobs_in(_stale_jobs(), NOW)

    assert [entry["id"] for entry in result["limboJobs"]] == ["high", "medium", "low"]
    assert [entry["highestSeverity"] for entry in result["limboJobs"]] == ["high", "medium", "low"]
    assert result["summary"] == {"total": 3, "high": 1, "medium": 1, "low": 1}


def test_find_limbo_jobs_isolates_bad_records():
    """Test one broken record does not abort the scan."""
    result = find_limbo_jobs_in([object()] + _stale_jobs(), NOW)

    assert result["summary"]["total"] == 3


def test_alert_per_job_uses_highest_issue():
    """Test one alert per job, keyed by its most severe issue."""
    job = _job(
        status="cancellation_requested",
        cancellation_request={"requestedAt": (NOW - timedelta(hours=50)).isoformat()},
        homeowner_lookup_pending=True,
        last_activity=NOW - timedelta(days=40),
    )

    alerts = generate_limbo_alerts(find_limbo_jobs_in([job], NOW)["limboJobs"])

    assert len(alerts) == 1
    alert = alerts[0]
    assert alert["id"] == "limbo_job-1_CANCELLATION_PENDING"
    assert alert["jobId"] == "job-1"
    assert alert["type"] == "CANCELLATION_PENDING"
    assert alert["severity"] == "high"
    assert alert["title"] == "Dana is waiting for cancellation response"
    assert alert["age"] == "2 days"
    assert [a["label"] for a in alert["actions"]] == ["Review Request", "Message Customer"]
    assert alert["job"] == {
        "id": "job-1",
        "title": "Deep clean",
        "customerName": "Dana",
        "status": "cancellation_requested",
    }


def test_completion_alert_title_and_actions():
    """Test the completion template and its recommended actions."""
    job = _job(
        status="pending_completion",
        completion={"submittedAt": (NOW - timedelta(days=6)).isoformat()},
    )

    alert = generate_limbo_alerts(find_limbo_jobs_in([job], NOW)["limboJobs"])[0]

    assert alert["title"] == 'Dana hasn\'t reviewed "Deep clean" yet'
    assert [a["label"] for a in alert["actions"]] == ["Send Reminder", "View Submission"]


def test_find_limbo_jobs_queries_active_provider_jobs(make_job, test_db):
    """Test the store-backed scan skips other providers and terminal jobs."""
    two_days_ago = NOW - timedelta(days=2)
    make_job(contractor_id="prov-1", status="scheduled", scheduled_date=two_days_ago)
    make_job(contractor_id="prov-1", status="completed", scheduled_date=two_days_ago)
    make_job(contractor_id="prov-2", status="scheduled", scheduled_date=two_days_ago)

    result = find_limbo_jobs(test_db, "prov-1", now=NOW)

    assert result["summary"] == {"total": 1, "high": 1, "medium": 0, "low": 0}
    assert result["limboJobs"][0]["limboIssues"][0]["type"] == "PAST_DUE"
