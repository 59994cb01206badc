"""Scheduling router - FastAPI endpoints for jobs, providers and time negotiation"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor, require_provider_self
from ...database import get_db
from .schemas import (
    AcceptTimeRequest,
    ApproveEstimateRequest,
    CancelJobRequest,
    JobCreate,
    JobResponse,
    OfferSlotsRequest,
    ProposeTimeRequest,
    ProviderProfileResponse,
    ProviderProfileUpdate,
    ScheduleJobRequest,
    SelectSlotRequest,
    SendEstimateRequest,
    serialize_job,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])
jobs_router = APIRouter(prefix="/jobs", tags=["Jobs"])
providers_router = APIRouter(prefix="/providers", tags=["Providers"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


# ============================================================================
# JOBS
# ============================================================================


@jobs_router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    data: JobCreate,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Create a job request (starts in pending)"""
    job = service.create_job(data.model_dump(), actor.role, actor.id)
    return serialize_job(job)


@jobs_router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return serialize_job(service.get_job(job_id, actor.role, actor.id))


# ============================================================================
# PROVIDER SETTINGS
# ============================================================================


@providers_router.put("/{provider_id}", response_model=ProviderProfileResponse)
async def update_provider_profile(
    provider_id: str,
    data: ProviderProfileUpdate,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Set the provider's timezone and working hours"""
    require_provider_self(actor, provider_id)
    profile = service.update_provider_profile(provider_id, data.model_dump())
    return ProviderProfileResponse.model_validate(profile)


# ============================================================================
# FREE-FORM PROPOSALS
# ============================================================================


@router.post("/jobs/{job_id}/proposals", response_model=JobResponse)
async def propose_time(
    job_id: str,
    data: ProposeTimeRequest,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.propose_time(
        job_id,
        data.date,
        data.time,
        actor.role,
        actor_id=actor.id,
        timezone=data.timezone,
        detected_timezone=data.detectedTimezone,
        expected_version=data.expectedVersion,
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/proposals/{proposal_index}/accept", response_model=JobResponse)
async def accept_time(
    job_id: str,
    proposal_index: int,
    data: Optional[AcceptTimeRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.accept_time(
        job_id,
        proposal_index,
        actor.role,
        actor_id=actor.id,
        expected_version=data.expectedVersion if data else None,
    )
    return serialize_job(job)


# ============================================================================
# OFFERED SLOTS
# ============================================================================


@router.post("/jobs/{job_id}/slots", response_model=JobResponse)
async def offer_slots(
    job_id: str,
    data: OfferSlotsRequest,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.offer_slots(
        job_id,
        [slot.model_dump() for slot in data.slots],
        actor.role,
        actor_id=actor.id,
        message=data.message,
        expected_version=data.expectedVersion,
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/slots/{slot_id}/select", response_model=JobResponse)
async def select_slot(
    job_id: str,
    slot_id: str,
    data: Optional[SelectSlotRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.select_slot(
        job_id,
        slot_id,
        actor.role,
        actor_id=actor.id,
        expected_version=data.expectedVersion if data else None,
    )
    return serialize_job(job)


# ============================================================================
# ESTIMATES
# ============================================================================


@router.post("/jobs/{job_id}/estimate", response_model=JobResponse)
async def send_estimate(
    job_id: str,
    data: SendEstimateRequest,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.send_estimate(
        job_id, data.amount, actor.role, actor_id=actor.id, expected_version=data.expectedVersion
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/estimate/approve", response_model=JobResponse)
async def approve_estimate(
    job_id: str,
    data: Optional[ApproveEstimateRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.approve_estimate(
        job_id,
        actor.role,
        actor_id=actor.id,
        expected_version=data.expectedVersion if data else None,
    )
    return serialize_job(job)


# ============================================================================
# DIRECT SCHEDULING AND CANCELLATION
# ============================================================================


@router.post("/jobs/{job_id}/schedule", response_model=JobResponse)
async def schedule_job(
    job_id: str,
    data: ScheduleJobRequest,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    job = service.schedule_job(
        job_id,
        data.date,
        data.time,
        actor.role,
        actor_id=actor.id,
        timezone=data.timezone,
        detected_timezone=data.detectedTimezone,
        expected_version=data.expectedVersion,
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: str,
    data: CancelJobRequest,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """
    Cancel a job.

    Scheduled jobs answer 409 with the cascade impact until the request is
    repeated with impactAcknowledged=true.
    """
    job = service.cancel_job(
        job_id,
        actor.role,
        data.reason,
        actor_id=actor.id,
        impact_acknowledged=data.impactAcknowledged,
        timezone=data.timezone,
        expected_version=data.expectedVersion,
    )
    return serialize_job(job)


@router.get("/jobs/{job_id}/display")
async def get_schedule_display(
    job_id: str,
    timezone: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    display = service.get_schedule_display(job_id, timezone, actor.role, actor.id)
    return {"jobId": job_id, "display": display}
