"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...shared.validators import validate_calendar_date, validate_time_of_day, validate_timezone
from .multiday import WEEKDAYS


class JobCreate(BaseModel):
    """Schema for creating a new job"""

    title: str
    description: Optional[str] = None
    customerName: Optional[str] = None
    customerId: Optional[str] = None
    contractorId: Optional[str] = None
    assignedTechId: Optional[str] = None
    estimatedDuration: Optional[int] = None
    homeownerLookupPending: bool = False

    @field_validator("estimatedDuration")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Estimated duration must be greater than 0")
        return v


class ProposeTimeRequest(BaseModel):
    """Free-form proposal: a calendar date and wall-clock time in a zone"""

    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM
    timezone: Optional[str] = None
    detectedTimezone: Optional[str] = None  # Zone reported by the caller's device
    expectedVersion: Optional[int] = None

    @field_validator("timezone", "detectedTimezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class AcceptTimeRequest(BaseModel):
    expectedVersion: Optional[int] = None


class SlotIn(BaseModel):
    start: datetime
    end: datetime


class OfferSlotsRequest(BaseModel):
    slots: list[SlotIn]
    message: Optional[str] = None
    expectedVersion: Optional[int] = None


class SelectSlotRequest(BaseModel):
    expectedVersion: Optional[int] = None


class SendEstimateRequest(BaseModel):
    # Kept loose so "250.00" and 250 both reach the service's own parsing
    amount: Any = None
    expectedVersion: Optional[int] = None


class ApproveEstimateRequest(BaseModel):
    expectedVersion: Optional[int] = None


class ScheduleJobRequest(BaseModel):
    """Direct scheduling by the provider"""

    date: str
    time: Optional[str] = None  # Defaults to 09:00, or the working window start for multi-day jobs
    timezone: Optional[str] = None
    detectedTimezone: Optional[str] = None
    expectedVersion: Optional[int] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return validate_calendar_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v)

    @field_validator("timezone", "detectedTimezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class CancelJobRequest(BaseModel):
    reason: str
    impactAcknowledged: bool = False
    timezone: Optional[str] = None
    expectedVersion: Optional[int] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError("Please select a reason")
        return v.strip()


class JobResponse(BaseModel):
    """Schema for job response"""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    customer_name: Optional[str] = None
    status: Optional[str] = None
    contractor_id: Optional[str] = None
    customer_id: Optional[str] = None
    assigned_tech_id: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    scheduled_date: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    scheduled_timezone: Optional[str] = None
    estimated_duration: Optional[int] = None
    multi_day_schedule: Optional[dict] = None
    proposed_times: Optional[list] = None
    scheduling: Optional[dict] = None
    estimate: Optional[dict] = None
    cancellation_request: Optional[dict] = None
    cancellation: Optional[dict] = None
    completion: Optional[dict] = None
    homeowner_lookup_pending: Optional[bool] = None
    accepted_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None
    version: Optional[int] = None


def serialize_job(job) -> dict:
    """Snapshot of a job as a plain dict"""
    return JobResponse.model_validate(job).model_dump()


class ProviderProfileUpdate(BaseModel):
    """Provider settings that drive zone resolution and multi-day segmentation"""

    businessName: Optional[str] = None
    timezone: Optional[str] = None
    workingHours: Optional[dict] = None  # {"monday": {"enabled": true, "start": "08:00", "end": "17:00"}}

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)

    @field_validator("workingHours")
    @classmethod
    def validate_working_hours(cls, v):
        if v is None:
            return v
        for day, config in v.items():
            if day not in WEEKDAYS:
                raise ValueError(f"Unknown weekday '{day}'")
            if not isinstance(config, dict):
                raise ValueError(f"Working hours for {day} must be an object")
            for key in ("start", "end"):
                if config.get(key) is not None:
                    validate_time_of_day(config[key])
        return v


class ProviderProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    business_name: Optional[str] = None
    timezone: Optional[str] = None
    working_hours: Optional[dict] = None
