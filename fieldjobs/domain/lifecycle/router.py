"""Lifecycle router - Limbo dashboards, impact previews and job execution endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor, require_provider_self
from ...database import get_db
from ..scheduling.schemas import JobResponse, serialize_job
from ..scheduling.service import SchedulingService
from .impact import get_impact_display_summary, suggest_route_reoptimization
from .limbo import find_limbo_jobs, generate_limbo_alerts
from .schemas import (
    CancellationRequestIn,
    JobActionRequest,
    ResolveCancellationRequest,
    RescheduleImpactRequest,
    RevisionRequest,
    SubmitCompletionRequest,
)
from .service import LifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lifecycle", tags=["Lifecycle"])


def get_lifecycle_service(db: Session = Depends(get_db)) -> LifecycleService:
    """Dependency injection for LifecycleService"""
    return LifecycleService(db)


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    return SchedulingService(db)


def _version(data) -> Optional[int]:
    return data.expectedVersion if data else None


# ============================================================================
# LIMBO DETECTION
# ============================================================================


@router.get("/limbo/{provider_id}")
async def get_limbo_jobs(
    provider_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Active jobs stuck in an intermediate state, highest severity first"""
    require_provider_self(actor, provider_id)
    return find_limbo_jobs(db, provider_id)


@router.get("/limbo/{provider_id}/alerts")
async def get_limbo_alerts(
    provider_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    require_provider_self(actor, provider_id)
    result = find_limbo_jobs(db, provider_id)
    return {"alerts": generate_limbo_alerts(result["limboJobs"]), "summary": result["summary"]}


# ============================================================================
# IMPACT PREVIEWS
# ============================================================================


@router.get("/jobs/{job_id}/impact")
async def get_cancellation_impact(
    job_id: str,
    timezone: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """What cancelling this job would do to the rest of the day's route"""
    impact = service.get_cancellation_impact(
        job_id, timezone=timezone, party=actor.role, actor_id=actor.id
    )
    remaining = [affected["job"] for affected in impact["affectedJobs"]]
    return {
        "impact": impact,
        "display": get_impact_display_summary(impact),
        "reoptimization": suggest_route_reoptimization(job_id, remaining),
    }


@router.post("/jobs/{job_id}/impact/reschedule")
async def get_reschedule_impact(
    job_id: str,
    data: RescheduleImpactRequest,
    actor: Actor = Depends(get_current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    impact = service.get_reschedule_impact(
        job_id, data.newDate, timezone=data.timezone, party=actor.role, actor_id=actor.id
    )
    return {"impact": impact, "display": get_impact_display_summary(impact)}


# ============================================================================
# EXECUTION
# ============================================================================


@router.post("/jobs/{job_id}/accept", response_model=JobResponse)
async def accept_job(
    job_id: str,
    data: Optional[JobActionRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    job = service.accept_job(job_id, actor.role, actor_id=actor.id, expected_version=_version(data))
    return serialize_job(job)


@router.post("/jobs/{job_id}/start", response_model=JobResponse)
async def start_work(
    job_id: str,
    data: Optional[JobActionRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    job = service.start_work(job_id, actor.role, actor_id=actor.id, expected_version=_version(data))
    return serialize_job(job)


@router.post("/jobs/{job_id}/complete", response_model=JobResponse)
async def submit_completion(
    job_id: str,
    data: Optional[SubmitCompletionRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    job = service.submit_completion(
        job_id,
        actor.role,
        notes=data.notes if data else None,
        actor_id=actor.id,
        expected_version=_version(data),
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/revision", response_model=JobResponse)
async def request_revision(
    job_id: str,
    data: RevisionRequest,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    job = service.request_revision(
        job_id, actor.role, data.reason, actor_id=actor.id, expected_version=data.expectedVersion
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/approve-completion", response_model=JobResponse)
async def approve_completion(
    job_id: str,
    data: Optional[JobActionRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    job = service.approve_completion(
        job_id, actor.role, actor_id=actor.id, expected_version=_version(data)
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/cancellation-request", response_model=JobResponse)
async def request_cancellation(
    job_id: str,
    data: CancellationRequestIn,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    job = service.request_cancellation(
        job_id, actor.role, data.reason, actor_id=actor.id, expected_version=data.expectedVersion
    )
    return serialize_job(job)


@router.post("/jobs/{job_id}/cancellation-resolution", response_model=JobResponse)
async def resolve_cancellation(
    job_id: str,
    data: ResolveCancellationRequest,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    """Approve or deny the other party's cancellation request"""
    job = service.resolve_cancellation(
        job_id,
        actor.role,
        data.approve,
        message=data.message,
        actor_id=actor.id,
        impact_acknowledged=data.impactAcknowledged,
        timezone=data.timezone,
        expected_version=data.expectedVersion,
    )
    return serialize_job(job)
