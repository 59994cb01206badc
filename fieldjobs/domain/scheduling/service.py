"""Scheduling service - Time negotiation, estimates and cancellation for jobs

Every action reloads the job, validates it against the transition guard, builds
the new field values and hands them to JobRepository.apply_update, which only
writes if the job's version is unchanged. The ORM instance is never mutated
before the write succeeds.
"""

import logging
import math
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...config import DEFAULT_JOB_DURATION_MINUTES, SCHEDULING_HORIZON_MONTHS
from ...models import Job, ProviderProfile
from ...shared.errors import (
    ActionNotPermittedError,
    ConcurrencyConflictError,
    ImpactConfirmationRequired,
    JobNotFoundError,
    ValidationError,
)
from ...shared.timestamps import to_instant, utc_now
from ..lifecycle.impact import analyze_cancellation_impact, analyze_reschedule_impact
from ..lifecycle.transitions import (
    VALID_PARTIES,
    Party,
    assert_action_allowed,
    assert_transition,
)
from .multiday import create_multi_day_schedule, format_schedule_display, is_multi_day_duration
from .repository import JobRepository
from .timezones import (
    create_date_in_timezone,
    get_zone,
    parse_time_of_day,
    resolve_timezone,
)

logger = logging.getLogger(__name__)

# Statuses in which a job occupies a slot on the provider's schedule
ON_SCHEDULE_STATUSES = ("scheduled", "in_progress", "cancellation_requested")


def _party_value(party) -> Optional[str]:
    return party.value if isinstance(party, Party) else party


def require_party(party, *allowed: Party) -> str:
    """Validate the acting party; optionally restrict it to ``allowed``"""
    value = _party_value(party)
    if value not in VALID_PARTIES:
        raise ValidationError(f"Unknown party '{value}'")
    if allowed and value not in {p.value for p in allowed}:
        raise ActionNotPermittedError(f"Only the {allowed[0].value} can do this")
    return value


def has_open_slots(job: Job) -> bool:
    slots = (job.scheduling or {}).get("offeredSlots") or []
    return any(slot.get("status") == "offered" for slot in slots)


def is_on_schedule(job: Job) -> bool:
    return job.scheduled_time is not None and job.status in ON_SCHEDULE_STATUSES


class JobActionService:
    """Reload, ownership and version checks, and the conditional write shared by job actions"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.repo = JobRepository()
        self.clock = clock

    def _load(self, job_id: str, party: Optional[str] = None, actor_id: Optional[str] = None) -> Job:
        """
        Load a job the caller is allowed to see.

        A job already linked to another account on the caller's side is
        reported as not found.
        """
        job = self.repo.get_job_or_raise(self.db, job_id)
        if party and actor_id:
            linked = job.contractor_id if party == Party.PROVIDER.value else job.customer_id
            if linked and linked != actor_id:
                logger.warning(f"⚠️ {party} {actor_id} denied access to job {job.id}")
                raise JobNotFoundError(job_id)
        return job

    @staticmethod
    def _check_version(job: Job, expected_version: Optional[int]) -> None:
        if expected_version is not None and job.version != expected_version:
            logger.warning(
                f"⚠️ Stale write on job {job.id}: expected v{expected_version}, found v{job.version}"
            )
            raise ConcurrencyConflictError(
                "This job was updated by someone else. Refresh and try again."
            )

    @staticmethod
    def _link_actor(job: Job, values: dict, party: str, actor_id: Optional[str]) -> None:
        """Bind an unlinked job to the acting account"""
        if not actor_id:
            return
        if party == Party.PROVIDER.value and not job.contractor_id:
            values["contractor_id"] = actor_id
        elif party == Party.CUSTOMER.value and not job.customer_id:
            values["customer_id"] = actor_id

    def _write(self, job: Job, values: dict) -> Job:
        return self.repo.apply_update(self.db, job, job.version, values)

    def _resolve_timezone(
        self, job: Job, explicit: Optional[str], detected: Optional[str] = None
    ) -> str:
        provider = self.repo.get_provider(self.db, job.contractor_id)
        return resolve_timezone(explicit, provider.timezone if provider else None, detected)

    def _cancellation_impact(
        self, job: Job, timezone: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict:
        all_jobs = self.repo.get_jobs_for_provider(self.db, job.contractor_id) if job.contractor_id else []
        tz = self._resolve_timezone(job, timezone or job.scheduled_timezone)
        return analyze_cancellation_impact(job, all_jobs, timezone=tz, now=now or self.clock())

    def _require_impact_acknowledged(
        self, job: Job, impact_acknowledged: bool, timezone: Optional[str], now: datetime
    ) -> None:
        """Raise ImpactConfirmationRequired before a job on the schedule is cancelled"""
        if is_on_schedule(job) and not impact_acknowledged:
            impact = self._cancellation_impact(job, timezone=timezone, now=now)
            logger.info(
                f"⚠️ Cancellation of job {job.id} needs impact confirmation: {impact['summary']}"
            )
            raise ImpactConfirmationRequired(impact)


class SchedulingService(JobActionService):
    """Service layer for the propose/accept, offered-slot and estimate workflows"""

    def _check_horizon(self, instant: datetime, now: datetime) -> None:
        if instant < now:
            raise ValidationError("Cannot schedule appointments in the past")
        if instant > now + relativedelta(months=SCHEDULING_HORIZON_MONTHS):
            raise ValidationError(
                f"Cannot schedule more than {SCHEDULING_HORIZON_MONTHS} months in advance"
            )

    @staticmethod
    def _build_instant(date_str: str, time_str: str, tz: str) -> datetime:
        try:
            day = date.fromisoformat(str(date_str).strip())
        except ValueError:
            raise ValidationError("Invalid date or time")

        parsed_time = parse_time_of_day(time_str)
        if parsed_time is None:
            raise ValidationError("Invalid date or time")

        return create_date_in_timezone(day.year, day.month, day.day, *parsed_time, tz)

    # ------------------------------------------------------------------
    # Jobs and provider settings
    # ------------------------------------------------------------------

    def create_job(self, data: dict, created_by, actor_id: Optional[str] = None) -> Job:
        """Create a job in pending; the creating account is linked on its side"""
        party = require_party(created_by)
        now = self.clock()
        job_data = {
            "title": data.get("title"),
            "description": data.get("description"),
            "customer_name": data.get("customerName"),
            "customer_id": data.get("customerId"),
            "contractor_id": data.get("contractorId"),
            "assigned_tech_id": data.get("assignedTechId"),
            "estimated_duration": data.get("estimatedDuration") or DEFAULT_JOB_DURATION_MINUTES,
            "homeowner_lookup_pending": bool(data.get("homeownerLookupPending")),
            "last_activity": now,
            "created_at": now,
        }
        if party == Party.PROVIDER.value and actor_id and not job_data["contractor_id"]:
            job_data["contractor_id"] = actor_id
        if party == Party.CUSTOMER.value and actor_id and not job_data["customer_id"]:
            job_data["customer_id"] = actor_id

        job = self.repo.create_job(self.db, **job_data)
        logger.info(f"✅ Job {job.id} created by {party}")
        return job

    def get_job(self, job_id: str, party=None, actor_id: Optional[str] = None) -> Job:
        return self._load(job_id, _party_value(party), actor_id)

    def update_provider_profile(self, provider_id: str, data: dict) -> ProviderProfile:
        profile = self.repo.upsert_provider(
            self.db,
            provider_id,
            business_name=data.get("businessName"),
            timezone=data.get("timezone"),
            working_hours=data.get("workingHours"),
        )
        logger.info(f"✅ Provider profile {provider_id} saved (timezone={profile.timezone})")
        return profile

    # ------------------------------------------------------------------
    # Free-form proposals
    # ------------------------------------------------------------------

    def propose_time(
        self,
        job_id: str,
        date: Optional[str],
        time: Optional[str],
        proposed_by,
        actor_id: Optional[str] = None,
        timezone: Optional[str] = None,
        detected_timezone: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """
        Append a proposed time to the job's negotiation history.

        The wall-clock time is read in the explicit zone, else the provider's
        configured zone, else the zone the caller's device detected.
        """
        if not date or not time:
            raise ValidationError("Please pick a date and time")
        party = require_party(proposed_by)

        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_action_allowed(job, "schedule")
        if has_open_slots(job):
            raise ActionNotPermittedError(
                "This job has offered time slots. Pick one of them instead."
            )
        assert_transition(job.status, "scheduling")

        tz = self._resolve_timezone(job, timezone, detected_timezone)
        instant = self._build_instant(date, time, tz)
        now = self.clock()
        self._check_horizon(instant, now)

        proposal = {
            "date": instant.isoformat(),
            "proposedBy": party,
            "createdAt": now.isoformat(),
            "timezone": tz,
        }
        values = {
            "proposed_times": list(job.proposed_times or []) + [proposal],
            "status": "scheduling",
            "last_activity": now,
        }
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Time proposed for job {job.id} by {party}: {proposal['date']} ({tz})")
        return job

    def accept_time(
        self,
        job_id: str,
        proposal_index: int,
        accepted_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Confirm a proposal made by the other party"""
        party = require_party(accepted_by)
        job = self._load(job_id, party, actor_id)

        proposals = job.proposed_times or []
        if proposal_index < 0 or proposal_index >= len(proposals):
            raise ValidationError("Proposal not found")
        proposal = proposals[proposal_index]

        if proposal.get("proposedBy") == party:
            raise ActionNotPermittedError("You cannot accept your own proposal")

        instant = to_instant(proposal.get("date"))
        if instant is None:
            raise ValidationError("Proposal has no valid date")

        if job.status == "scheduled":
            if job.scheduled_time == instant:
                logger.info(f"ℹ️ Duplicate accept for job {job.id} ignored")
                return job
            raise ConcurrencyConflictError("This job has already been scheduled for another time")

        self._check_version(job, expected_version)
        assert_action_allowed(job, "schedule")
        if has_open_slots(job):
            raise ActionNotPermittedError(
                "This job has offered time slots. Pick one of them instead."
            )
        assert_transition(job.status, "scheduled")

        now = self.clock()
        if instant < now:
            raise ValidationError("This proposed time has already passed")

        duration = job.estimated_duration or DEFAULT_JOB_DURATION_MINUTES
        values = {
            "scheduled_time": instant,
            "scheduled_date": instant,
            "scheduled_end_time": instant + timedelta(minutes=duration),
            "scheduled_timezone": proposal.get("timezone") or job.scheduled_timezone,
            "status": "scheduled",
            "last_activity": now,
        }
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Appointment confirmed for job {job.id} at {instant.isoformat()}")
        return job

    # ------------------------------------------------------------------
    # Offered slots
    # ------------------------------------------------------------------

    def offer_slots(
        self,
        job_id: str,
        slots: list[dict],
        offered_by,
        actor_id: Optional[str] = None,
        message: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Publish discrete time windows for the customer to pick from"""
        party = require_party(offered_by, Party.PROVIDER)
        if not slots:
            raise ValidationError("Offer at least one time slot")

        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_action_allowed(job, "schedule")
        assert_transition(job.status, "scheduling")

        now = self.clock()
        new_slots = []
        for slot in slots:
            start = to_instant(slot.get("start"))
            end = to_instant(slot.get("end"))
            if start is None or end is None:
                raise ValidationError("Each slot needs a start and an end")
            if end <= start:
                raise ValidationError("Each slot must end after it starts")
            self._check_horizon(start, now)
            new_slots.append(
                {
                    "id": uuid.uuid4().hex,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                    "status": "offered",
                }
            )

        # A new offer replaces any slots still open
        previous = [
            dict(slot, status="expired") if slot.get("status") == "offered" else dict(slot)
            for slot in (job.scheduling or {}).get("offeredSlots") or []
        ]

        scheduling = dict(job.scheduling or {})
        scheduling.update(
            {
                "offeredSlots": previous + new_slots,
                "offeredMessage": message,
                "offeredAt": now.isoformat(),
            }
        )
        values = {"scheduling": scheduling, "status": "scheduling", "last_activity": now}
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Offered {len(new_slots)} slot(s) on job {job.id}")
        return job

    def select_slot(
        self,
        job_id: str,
        slot_id: str,
        selected_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Customer picks one offered slot; it becomes the confirmed schedule"""
        party = require_party(selected_by, Party.CUSTOMER)
        job = self._load(job_id, party, actor_id)

        slots = (job.scheduling or {}).get("offeredSlots") or []
        selected = next((slot for slot in slots if slot.get("id") == slot_id), None)
        if not selected:
            raise ValidationError("Time slot not found")

        if selected.get("status") == "taken" and job.status == "scheduled":
            logger.info(f"ℹ️ Duplicate slot selection for job {job.id} ignored")
            return job
        if selected.get("status") != "offered":
            raise ActionNotPermittedError("This time slot is no longer available")

        self._check_version(job, expected_version)
        assert_action_allowed(job, "schedule")
        assert_transition(job.status, "scheduled")

        now = self.clock()
        start = to_instant(selected["start"])
        end = to_instant(selected["end"])
        if start < now:
            raise ValidationError("This time slot has already passed")

        updated_slots = []
        for slot in slots:
            if slot.get("id") == slot_id:
                updated_slots.append(dict(slot, status="taken"))
            elif slot.get("status") == "offered":
                updated_slots.append(dict(slot, status="expired"))
            else:
                updated_slots.append(dict(slot))

        scheduling = dict(job.scheduling or {})
        scheduling.update(
            {
                "offeredSlots": updated_slots,
                "selectedSlotId": slot_id,
                "selectedAt": now.isoformat(),
                "confirmedSlot": {"start": selected["start"], "end": selected["end"]},
                "confirmedAt": now.isoformat(),
            }
        )
        values = {
            "scheduling": scheduling,
            "scheduled_time": start,
            "scheduled_date": start,
            "scheduled_end_time": end,
            "status": "scheduled",
            "last_activity": now,
        }
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Slot {slot_id} confirmed for job {job.id}")
        return job

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def send_estimate(
        self,
        job_id: str,
        amount,
        sent_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        party = require_party(sent_by, Party.PROVIDER)

        try:
            parsed_amount = float(amount)
        except (TypeError, ValueError):
            raise ValidationError("Please enter a valid amount")
        if not math.isfinite(parsed_amount) or parsed_amount <= 0:
            raise ValidationError("Please enter a valid amount")

        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_transition(job.status, "quoted")

        now = self.clock()
        values = {
            "estimate": {"amount": parsed_amount, "status": "pending", "sentAt": now.isoformat()},
            "status": "quoted",
            "last_activity": now,
        }
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Estimate of {parsed_amount:.2f} sent for job {job.id}")
        return job

    def approve_estimate(
        self,
        job_id: str,
        approved_by,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Approving an estimate unlocks scheduling; it does not schedule"""
        party = require_party(approved_by, Party.CUSTOMER)
        job = self._load(job_id, party, actor_id)

        estimate = job.estimate or {}
        if estimate.get("status") == "approved" and job.status == "scheduling":
            logger.info(f"ℹ️ Duplicate estimate approval for job {job.id} ignored")
            return job
        if estimate.get("status") != "pending":
            raise ActionNotPermittedError("There is no pending estimate to approve")

        self._check_version(job, expected_version)
        assert_transition(job.status, "scheduling")

        now = self.clock()
        values = {
            "estimate": dict(estimate, status="approved", approvedAt=now.isoformat()),
            "status": "scheduling",
            "accepted_at": now,
            "last_activity": now,
        }
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(f"✅ Estimate approved for job {job.id}")
        return job

    # ------------------------------------------------------------------
    # Direct scheduling
    # ------------------------------------------------------------------

    def schedule_job(
        self,
        job_id: str,
        date: str,
        time: Optional[str],
        scheduled_by,
        actor_id: Optional[str] = None,
        timezone: Optional[str] = None,
        working_hours: Optional[dict] = None,
        detected_timezone: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """
        Provider schedules a job directly.

        Jobs longer than one working day get a multi-day schedule. Its first
        segment starts at the requested time (never before the day's working
        window opens) and sets the scheduled instants. Without a requested
        time the first segment starts when the window opens.
        """
        party = require_party(scheduled_by, Party.PROVIDER)
        job = self._load(job_id, party, actor_id)
        self._check_version(job, expected_version)
        assert_action_allowed(job, "schedule")
        assert_transition(job.status, "scheduled")

        provider = self.repo.get_provider(self.db, job.contractor_id or actor_id)
        tz = resolve_timezone(
            timezone, provider.timezone if provider else None, detected_timezone
        )
        start = self._build_instant(date, time or "09:00", tz)
        now = self.clock()

        duration = job.estimated_duration or DEFAULT_JOB_DURATION_MINUTES
        multi_day_schedule = None
        end = start + timedelta(minutes=duration)

        if is_multi_day_duration(duration):
            hours = working_hours or (provider.working_hours if provider else None)
            first_day_start = f"{start.astimezone(get_zone(tz)):%H:%M}" if time else None
            multi_day_schedule = create_multi_day_schedule(
                date_from_iso(date), duration, hours, first_day_start=first_day_start
            )
            if not multi_day_schedule["segments"]:
                raise ValidationError("No working days available for this job")
            first = multi_day_schedule["segments"][0]
            start = self._build_instant(first["date"], first["startTime"], tz)
            end = self._build_instant(first["date"], first["endTime"], tz)

        self._check_horizon(start, now)

        values = {
            "scheduled_time": start,
            "scheduled_date": start,
            "scheduled_end_time": end,
            "scheduled_timezone": tz,
            "multi_day_schedule": multi_day_schedule,
            "status": "scheduled",
            "last_activity": now,
        }
        self._link_actor(job, values, party, actor_id)

        job = self._write(job, values)
        logger.info(
            f"✅ Job {job.id} scheduled for {start.isoformat()}"
            + (f" ({multi_day_schedule['totalDays']} days)" if multi_day_schedule else "")
        )
        return job

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def get_cancellation_impact(
        self,
        job_id: str,
        timezone: Optional[str] = None,
        now: Optional[datetime] = None,
        party=None,
        actor_id: Optional[str] = None,
    ) -> dict:
        job = self._load(job_id, _party_value(party), actor_id)
        return self._cancellation_impact(job, timezone=timezone, now=now)

    def get_reschedule_impact(
        self,
        job_id: str,
        new_date,
        timezone: Optional[str] = None,
        now: Optional[datetime] = None,
        party=None,
        actor_id: Optional[str] = None,
    ) -> dict:
        job = self._load(job_id, _party_value(party), actor_id)
        all_jobs = self.repo.get_jobs_for_provider(self.db, job.contractor_id) if job.contractor_id else []
        provider = self.repo.get_provider(self.db, job.contractor_id)
        tz = resolve_timezone(
            timezone or job.scheduled_timezone, provider.timezone if provider else None
        )
        try:
            return analyze_reschedule_impact(
                job,
                new_date,
                all_jobs,
                working_hours=provider.working_hours if provider else None,
                timezone=tz,
                now=now or self.clock(),
            )
        except ValueError as e:
            raise ValidationError(str(e))

    def cancel_job(
        self,
        job_id: str,
        cancelled_by,
        reason: Optional[str],
        actor_id: Optional[str] = None,
        impact_acknowledged: bool = False,
        timezone: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Job:
        """
        Cancel a job and clear its schedule.

        A job that currently occupies a slot on the provider's schedule can only
        be cancelled once the caller has seen the cascade impact and passes
        ``impact_acknowledged=True``.

        Raises:
            ImpactConfirmationRequired: carries the impact analysis to show
        """
        party = require_party(cancelled_by)
        if not reason or not str(reason).strip():
            raise ValidationError("Please select a reason")

        job = self._load(job_id, party, actor_id)
        if job.status == "cancelled":
            logger.info(f"ℹ️ Duplicate cancel for job {job.id} ignored")
            return job

        self._check_version(job, expected_version)
        assert_action_allowed(job, "cancel")
        assert_transition(job.status, "cancelled")

        now = self.clock()
        self._require_impact_acknowledged(job, impact_acknowledged, timezone, now)

        values = {
            "status": "cancelled",
            "cancellation": {
                "cancelledAt": now.isoformat(),
                "cancelledBy": party,
                "reason": str(reason).strip(),
            },
            "scheduled_time": None,
            "scheduled_date": None,
            "scheduled_end_time": None,
            "multi_day_schedule": None,
            "last_activity": now,
        }

        job = self._write(job, values)
        logger.info(f"✅ Job {job.id} cancelled by {party}")
        return job

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def get_schedule_display(
        self,
        job_id: str,
        timezone: Optional[str] = None,
        party=None,
        actor_id: Optional[str] = None,
    ) -> str:
        job = self._load(job_id, _party_value(party), actor_id)
        tz = self._resolve_timezone(job, timezone or job.scheduled_timezone)
        return format_schedule_display(job, tz)


def date_from_iso(value: str) -> date:
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError("Invalid date or time")
