"""Lifecycle service - Job execution, completion review and cancellation requests"""

import logging
from datetime import timedelta
from typing import Optional

from ...config import COMPLETION_AUTO_APPROVE_DAYS
from ...models import Job
from ...shared.errors import ActionNotPermittedError, ValidationError
from ..scheduling.service import JobActionService, require_party
from .transitions import Party, assert_action_allowed, assert_transition

logger = logging.getLogger(__name__)

# Statuses a denied cancellation request may restore
RESTORABLE_STATUSES = ("scheduled", "confirmed")


def _require_text(value: Optional[str], message: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(message)
    return str(value).strip()


class LifecycleService(JobActionService):
    """Service layer for everything after a job is on the calendar"""

    def accept_job(
        self,
        job_id: str,
        accepted_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Provider takes on a pending job request"""
        party = require_party(accepted_by, Party.PROVIDER)
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_transition(job.status, "accepted")

        now = self.clock()
        values = {"status": "accepted", "accepted_at": now, "last_activity": now}
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Job {job.id} accepted")
        return job

    def start_work(
        self,
        job_id: str,
        started_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        party = require_party(started_by, Party.PROVIDER)
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_action_allowed(job, "start_work")
        assert_transition(job.status, "in_progress")

        job = self._write(job, {"status": "in_progress", "last_activity": self.clock()})
        logger.info(f"✅ Work started on job {job.id}")
        return job

    def submit_completion(
        self,
        job_id: str,
        submitted_by,
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Provider marks the work done; the customer then reviews it"""
        party = require_party(submitted_by, Party.PROVIDER)
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_action_allowed(job, "complete")
        assert_transition(job.status, "pending_completion")

        now = self.clock()
        completion = dict(job.completion or {})
        completion.update(
            {
                "submittedAt": now.isoformat(),
                "submittedBy": party,
                "notes": notes,
                "autoApproveAt": (now + timedelta(days=COMPLETION_AUTO_APPROVE_DAYS)).isoformat(),
            }
        )

        job = self._write(
            job, {"status": "pending_completion", "completion": completion, "last_activity": now}
        )
        logger.info(f"✅ Completion submitted for job {job.id}")
        return job

    def request_revision(
        self,
        job_id: str,
        requested_by,
        reason: Optional[str],
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        party = require_party(requested_by, Party.CUSTOMER)
        reason = _require_text(reason, "Please describe what needs to be revised")
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_transition(job.status, "revision_requested")

        now = self.clock()
        completion = dict(job.completion or {})
        completion["revisionRequest"] = {"requestedAt": now.isoformat(), "reason": reason}

        job = self._write(
            job, {"status": "revision_requested", "completion": completion, "last_activity": now}
        )
        logger.info(f"✅ Revision requested on job {job.id}")
        return job

    def approve_completion(
        self,
        job_id: str,
        approved_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        party = require_party(approved_by, Party.CUSTOMER)
        job = self._load(job_id, party, actor_id)
        if job.status == "completed":
            logger.info(f"ℹ️ Duplicate completion approval for job {job.id} ignored")
            return job

        self._check_version(job, expected_version)
        assert_transition(job.status, "completed")

        now = self.clock()
        completion = dict(job.completion or {})
        completion["approvedAt"] = now.isoformat()

        job = self._write(job, {"status": "completed", "completion": completion, "last_activity": now})
        logger.info(f"✅ Job {job.id} completed")
        return job

    def request_cancellation(
        self,
        job_id: str,
        requested_by,
        reason: Optional[str],
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """
        Ask the other party to agree to a cancellation.

        The current status is kept on the request so a denial can restore it.
        """
        party = require_party(requested_by)
        reason = _require_text(reason, "Please select a reason")
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_action_allowed(job, "cancel")
        assert_transition(job.status, "cancellation_requested")

        now = self.clock()
        cancellation_request = {
            "requestedAt": now.isoformat(),
            "requestedBy": party,
            "reason": reason,
            "status": "pending",
            "previousStatus": job.status,
        }

        job = self._write(
            job,
            {
                "status": "cancellation_requested",
                "cancellation_request": cancellation_request,
                "last_activity": now,
            },
        )
        logger.info(f"✅ Cancellation requested on job {job.id} by {party}")
        return job

    def resolve_cancellation(
        self,
        job_id: str,
        resolved_by,
        approve: bool,
        message: Optional[str] = None,
        actor_id: Optional[str] = None,
        impact_acknowledged: bool = False,
        timezone: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """
        Approve or deny a pending cancellation request.

        Approving cancels the job and clears its schedule. Like a direct cancel,
        approving for a job still on the schedule needs ``impact_acknowledged``.
        Denying needs a reason and puts the job back in the status it had
        before the request.

        Raises:
            ImpactConfirmationRequired: approval of a scheduled job without acknowledgement
        """
        party = require_party(resolved_by)
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)

        request = job.cancellation_request or {}
        if job.status != "cancellation_requested" or request.get("status") != "pending":
            raise ActionNotPermittedError("There is no pending cancellation request")
        if request.get("requestedBy") == party:
            raise ActionNotPermittedError("You cannot respond to your own cancellation request")

        now = self.clock()

        if approve:
            assert_transition(job.status, "cancelled")
            self._require_impact_acknowledged(job, impact_acknowledged, timezone, now)
            values = {
                "status": "cancelled",
                "cancellation_request": dict(
                    request, status="approved", resolvedAt=now.isoformat()
                ),
                "cancellation": {
                    "cancelledAt": now.isoformat(),
                    "cancelledBy": request.get("requestedBy"),
                    "reason": request.get("reason"),
                    "approvedBy": party,
                },
                "scheduled_time": None,
                "scheduled_date": None,
                "scheduled_end_time": None,
                "multi_day_schedule": None,
                "last_activity": now,
            }
        else:
            message = _require_text(message, "Please explain why the cancellation is denied")
            restored = request.get("previousStatus")
            if restored not in RESTORABLE_STATUSES:
                restored = "scheduled" if job.scheduled_time else "confirmed"
            assert_transition(job.status, restored)
            values = {
                "status": restored,
                "cancellation_request": dict(
                    request, status="denied", resolvedAt=now.isoformat(), denialReason=message
                ),
                "last_activity": now,
            }

        job = self._write(job, values)
        logger.info(
            f"✅ Cancellation request on job {job.id} {'approved' if approve else 'denied'} -> {job.status}"
        )
        return job
