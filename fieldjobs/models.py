"""
Job coordination models
"""

import uuid
from datetime import timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, TypeDecorator

from .config import DEFAULT_JOB_DURATION_MINUTES
from .database import Base
from .shared.timestamps import to_instant, utc_now


def generate_job_id():
    """Generate an opaque job identifier"""
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """DateTime column that always hands back aware UTC datetimes.

    Values are stored as naive UTC so SQLite and Postgres behave the same.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        instant = to_instant(value)
        if instant is None:
            return None
        return instant.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class ProviderProfile(Base):
    """Service provider settings used for scheduling"""

    __tablename__ = "provider_profiles"

    id = Column(String(64), primary_key=True, index=True)
    business_name = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=True)  # IANA zone, e.g. "America/New_York"
    # {"monday": {"enabled": true, "start": "08:00", "end": "17:00"}, ...}
    working_hours = Column(JSON, nullable=True)

    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)


class Job(Base):
    """A single service engagement tracked from request to completion or cancellation"""

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, index=True, default=generate_job_id)

    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    customer_name = Column(String(255), nullable=True)

    # pending → quoted/scheduling → scheduled → in_progress → pending_completion → completed
    # See domain/lifecycle/transitions.py for the full graph
    status = Column(String(50), default="pending", nullable=False, index=True)

    # Linkage
    contractor_id = Column(String(64), nullable=True, index=True)
    customer_id = Column(String(64), nullable=True, index=True)
    assigned_tech_id = Column(String(64), nullable=True)

    # Confirmed schedule (canonical UTC instants)
    scheduled_time = Column(UTCDateTime, nullable=True)
    scheduled_date = Column(UTCDateTime, nullable=True, index=True)
    scheduled_end_time = Column(UTCDateTime, nullable=True)
    scheduled_timezone = Column(String(64), nullable=True)
    estimated_duration = Column(Integer, default=DEFAULT_JOB_DURATION_MINUTES, nullable=False)
    multi_day_schedule = Column(JSON, nullable=True)

    # Negotiation state
    proposed_times = Column(JSON, default=list, nullable=False)  # Append-only history
    scheduling = Column(JSON, default=dict, nullable=False)  # offeredSlots, confirmedSlot
    estimate = Column(JSON, nullable=True)  # {"amount": 250.0, "status": "pending"}

    # Status-specific sub-records, each with its own timestamps
    cancellation_request = Column(JSON, nullable=True)
    cancellation = Column(JSON, nullable=True)
    completion = Column(JSON, nullable=True)

    homeowner_lookup_pending = Column(Boolean, default=False, nullable=False)

    # Timestamps
    accepted_at = Column(UTCDateTime, nullable=True)
    last_activity = Column(UTCDateTime, default=utc_now, nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)

    # Optimistic-concurrency token, checked and incremented by every write
    version = Column(Integer, default=1, nullable=False)
