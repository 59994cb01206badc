"""Lifecycle domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_timezone


class JobActionRequest(BaseModel):
    """Body for actions that carry nothing but the version the caller saw"""

    expectedVersion: Optional[int] = None


class SubmitCompletionRequest(BaseModel):
    notes: Optional[str] = None
    expectedVersion: Optional[int] = None


class RevisionRequest(BaseModel):
    reason: Optional[str] = None
    expectedVersion: Optional[int] = None


class CancellationRequestIn(BaseModel):
    reason: Optional[str] = None
    expectedVersion: Optional[int] = None


class ResolveCancellationRequest(BaseModel):
    approve: bool
    message: Optional[str] = None  # Required when denying
    impactAcknowledged: bool = False  # Required to approve for a job still on the schedule
    timezone: Optional[str] = None
    expectedVersion: Optional[int] = None

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class RescheduleImpactRequest(BaseModel):
    newDate: str  # ISO instant
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)
