"""
Limbo detection for jobs stuck in intermediate states

Each limbo condition is a row in LIMBO_RULES. detect_limbo_issues() is the only
interpreter of that table: adding a condition means adding a row.

Everything here is a pure function of (job snapshot, now). The clock is read
once, by the caller, never inside rule evaluation.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ...config import COMPLETION_AUTO_APPROVE_DAYS
from ...shared.timestamps import to_instant, utc_now
from ..scheduling.repository import JobRepository
from ..scheduling.schemas import serialize_job

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _no_extras(job: Any, age: timedelta, reference: datetime) -> dict:
    return {}


@dataclass(frozen=True)
class LimboRule:
    type: str
    severity: str
    max_age: timedelta
    message: str
    applies: Callable[[Any], bool]
    # (job, fallback activity time) -> instant the age is measured from
    reference_time: Callable[[Any, Optional[datetime]], Optional[datetime]]
    extras: Callable[[Any, timedelta, datetime], dict] = field(default=_no_extras)


def _sub_record_time(raw: Any, fallback: Optional[datetime]) -> Optional[datetime]:
    """A missing timestamp falls back to last activity; an unparseable one skips the rule"""
    if raw is None or raw == "":
        return fallback
    return to_instant(raw)


def _completion_extras(job: Any, age: timedelta, reference: datetime) -> dict:
    remaining = timedelta(days=COMPLETION_AUTO_APPROVE_DAYS) - age
    return {"autoApproveIn": format_age(remaining)}


def _past_due_extras(job: Any, age: timedelta, reference: datetime) -> dict:
    return {"scheduledDate": reference.date().isoformat()}


LIMBO_RULES: tuple[LimboRule, ...] = (
    LimboRule(
        type="CANCELLATION_PENDING",
        severity="high",
        max_age=timedelta(hours=48),
        message="Cancellation request pending contractor response",
        applies=lambda job: job.status == "cancellation_requested",
        reference_time=lambda job, fallback: _sub_record_time(
            (job.cancellation_request or {}).get("requestedAt"), fallback
        ),
    ),
    LimboRule(
        type="COMPLETION_PENDING",
        severity="medium",
        # Flag before the auto-approve deadline
        max_age=timedelta(days=5),
        message="Completion pending homeowner review",
        applies=lambda job: job.status == "pending_completion",
        reference_time=lambda job, fallback: _sub_record_time(
            (job.completion or {}).get("submittedAt"), fallback
        ),
        extras=_completion_extras,
    ),
    LimboRule(
        type="REVISION_PENDING",
        severity="medium",
        max_age=timedelta(days=7),
        message="Revision requested but not resubmitted",
        applies=lambda job: job.status == "revision_requested",
        reference_time=lambda job, fallback: _sub_record_time(
            ((job.completion or {}).get("revisionRequest") or {}).get("requestedAt"), fallback
        ),
    ),
    LimboRule(
        type="HOMEOWNER_UNLINKED",
        severity="low",
        max_age=timedelta(days=30),
        message="Homeowner account not yet linked",
        applies=lambda job: bool(job.homeowner_lookup_pending),
        reference_time=lambda job, fallback: fallback,
    ),
    LimboRule(
        type="UNSCHEDULED",
        severity="medium",
        max_age=timedelta(days=14),
        message="Job confirmed but not yet scheduled",
        applies=lambda job: job.status in ("accepted", "confirmed") and not job.scheduled_date,
        reference_time=lambda job, fallback: _sub_record_time(job.accepted_at, fallback),
    ),
    LimboRule(
        type="PAST_DUE",
        severity="high",
        # Grace period after the scheduled date
        max_age=timedelta(days=1),
        message="Scheduled date passed but job not marked complete",
        applies=lambda job: bool(job.scheduled_date)
        and job.status not in ("completed", "cancelled", "pending_completion"),
        reference_time=lambda job, fallback: to_instant(job.scheduled_date),
        extras=_past_due_extras,
    ),
)

ALERT_TITLES = {
    "CANCELLATION_PENDING": "{customer} is waiting for cancellation response",
    "COMPLETION_PENDING": '{customer} hasn\'t reviewed "{job}" yet',
    "REVISION_PENDING": 'Revision needed for "{job}"',
    "HOMEOWNER_UNLINKED": "{customer} hasn't linked their account",
    "UNSCHEDULED": '"{job}" needs to be scheduled',
    "PAST_DUE": '"{job}" is past its scheduled date',
}
DEFAULT_ALERT_TITLE = 'Action needed for "{job}"'

RECOMMENDED_ACTIONS = {
    "CANCELLATION_PENDING": [
        {"label": "Review Request", "action": "openCancellationModal"},
        {"label": "Message Customer", "action": "openChat"},
    ],
    "COMPLETION_PENDING": [
        {"label": "Send Reminder", "action": "sendCompletionReminder"},
        {"label": "View Submission", "action": "viewCompletion"},
    ],
    "REVISION_PENDING": [
        {"label": "View Feedback", "action": "viewRevisionRequest"},
        {"label": "Update Completion", "action": "editCompletion"},
    ],
    "HOMEOWNER_UNLINKED": [
        {"label": "Resend Invite", "action": "resendInvite"},
        {"label": "Update Email", "action": "editCustomerEmail"},
    ],
    "UNSCHEDULED": [
        {"label": "Schedule Now", "action": "openScheduler"},
        {"label": "Offer Times", "action": "offerTimeSlots"},
    ],
    "PAST_DUE": [
        {"label": "Mark Complete", "action": "openCompletionForm"},
        {"label": "Reschedule", "action": "openScheduler"},
    ],
}
DEFAULT_ACTIONS = [{"label": "View Job", "action": "viewJob"}]


def format_age(age: timedelta) -> str:
    """Day granularity from 24h, hour granularity from 60m, otherwise minutes"""
    if age < timedelta(0):
        return "now"

    hours = int(age.total_seconds() // 3600)
    days = hours // 24

    if days > 0:
        return f"{days} day{'s' if days != 1 else ''}"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    minutes = int(age.total_seconds() // 60)
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


def get_highest_severity(issues: list[dict]) -> Optional[str]:
    if not issues:
        return None
    return min((issue["severity"] for issue in issues), key=SEVERITY_ORDER.__getitem__)


def detect_limbo_issues(job: Any, now: Any, rules: tuple[LimboRule, ...] = LIMBO_RULES) -> list[dict]:
    """
    Evaluate every limbo rule against one job.

    Args:
        job: Job snapshot (ORM instance or any object with the same attributes)
        now: The instant to measure ages against

    Returns:
        list[dict]: Triggered issues, highest severity first (rule order breaks ties)
    """
    now = to_instant(now)
    fallback = to_instant(job.last_activity) or to_instant(job.created_at)
    issues = []

    for rule in rules:
        if not rule.applies(job):
            continue

        reference = rule.reference_time(job, fallback)
        if reference is None:
            logger.debug(f"Skipping {rule.type} for job {job.id}: no usable timestamp")
            continue

        age = now - reference
        if age <= rule.max_age:
            continue

        issue = {
            "type": rule.type,
            "severity": rule.severity,
            "maxAge": rule.max_age,
            "message": rule.message,
            "age": age,
            "ageFormatted": format_age(age),
        }
        issue.update(rule.extras(job, age, reference))
        issues.append(issue)

    issues.sort(key=lambda issue: SEVERITY_ORDER[issue["severity"]])
    return issues


def find_limbo_jobs_in(jobs: list, now: Any) -> dict:
    """
    Scan a snapshot of jobs and return the ones in limbo, high severity first.

    A job that fails to evaluate is logged and skipped; the scan always completes.
    """
    limbo_jobs = []

    for job in jobs:
        try:
            issues = detect_limbo_issues(job, now)
            if not issues:
                continue
            entry = serialize_job(job)
        except Exception:
            logger.exception(f"❌ Limbo check failed for job {getattr(job, 'id', None)}")
            continue

        entry["limboIssues"] = issues
        entry["highestSeverity"] = get_highest_severity(issues)
        limbo_jobs.append(entry)

    limbo_jobs.sort(key=lambda entry: SEVERITY_ORDER[entry["highestSeverity"]])

    summary = {"total": len(limbo_jobs), "high": 0, "medium": 0, "low": 0}
    for entry in limbo_jobs:
        summary[entry["highestSeverity"]] += 1

    return {"limboJobs": limbo_jobs, "summary": summary}


def find_limbo_jobs(db: Session, provider_id: str, now: Optional[datetime] = None) -> dict:
    """Find all active jobs in limbo for a provider"""
    now = now or utc_now()
    jobs = JobRepository.get_active_jobs_for_provider(db, provider_id)

    result = find_limbo_jobs_in(jobs, now)
    if result["summary"]["total"]:
        logger.info(f"📊 Limbo scan for provider {provider_id}: {result['summary']}")
    return result


def _alert_title(issue: dict, entry: dict) -> str:
    customer = entry.get("customer_name") or "Customer"
    job_title = entry.get("title") or entry.get("description") or "Job"
    template = ALERT_TITLES.get(issue["type"], DEFAULT_ALERT_TITLE)
    return template.format(customer=customer, job=job_title)


def generate_limbo_alerts(limbo_jobs: list[dict]) -> list[dict]:
    """
    One alert per limbo job, keyed by its first (highest priority) issue.

    Args:
        limbo_jobs: Entries produced by find_limbo_jobs

    Returns:
        list[dict]: Alerts ready for a dashboard or notification system
    """
    alerts = []
    for entry in limbo_jobs:
        issues = entry.get("limboIssues") or []
        if not issues:
            continue
        primary = issues[0]

        alerts.append(
            {
                "id": f"limbo_{entry['id']}_{primary['type']}",
                "jobId": entry["id"],
                "severity": primary["severity"],
                "type": primary["type"],
                "title": _alert_title(primary, entry),
                "message": primary["message"],
                "age": primary["ageFormatted"],
                "actions": [dict(a) for a in RECOMMENDED_ACTIONS.get(primary["type"], DEFAULT_ACTIONS)],
                "job": {
                    "id": entry["id"],
                    "title": entry.get("title") or entry.get("description") or "Service Job",
                    "customerName": entry.get("customer_name"),
                    "status": entry.get("status"),
                },
            }
        )
    return alerts
