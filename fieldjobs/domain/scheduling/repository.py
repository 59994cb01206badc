"""Job repository - Database operations for jobs and provider profiles"""

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from ...models import Job, ProviderProfile
from ...shared.errors import (
    ConcurrencyConflictError,
    JobNotFoundError,
    TransientStoreError,
    ValidationError,
)
from ...shared.timestamps import utc_now
from ..lifecycle.transitions import TERMINAL_STATUSES, is_valid_status

logger = logging.getLogger(__name__)

# Connectivity problems a caller may retry
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


class JobRepository:
    """Repository for job database operations"""

    @staticmethod
    def get_job(db: Session, job_id: str) -> Optional[Job]:
        """Get a job by ID, always re-reading the persisted row"""
        try:
            return db.get(Job, job_id, populate_existing=True)
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while loading job {job_id}: {e}")
            raise TransientStoreError("Job store is temporarily unavailable. Please retry.")

    @staticmethod
    def get_job_or_raise(db: Session, job_id: str) -> Job:
        job = JobRepository.get_job(db, job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    @staticmethod
    def create_job(db: Session, **job_data) -> Job:
        """Create a new job in pending status"""
        job_data.setdefault("status", "pending")
        if not is_valid_status(job_data["status"]):
            raise ValidationError(f"Unknown status '{job_data['status']}'")

        job = Job(**job_data)
        try:
            db.add(job)
            db.commit()
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while creating job: {e}")
            raise TransientStoreError("Job store is temporarily unavailable. Please retry.")
        db.refresh(job)
        return job

    @staticmethod
    def get_active_jobs_for_provider(db: Session, provider_id: str) -> list[Job]:
        """Non-terminal jobs for a provider, most recently active first"""
        try:
            return (
                db.query(Job)
                .filter(
                    Job.contractor_id == provider_id,
                    Job.status.notin_(list(TERMINAL_STATUSES)),
                )
                .order_by(Job.last_activity.desc())
                .all()
            )
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while listing jobs for {provider_id}: {e}")
            raise TransientStoreError("Job store is temporarily unavailable. Please retry.")

    @staticmethod
    def get_jobs_for_provider(db: Session, provider_id: str) -> list[Job]:
        try:
            return (
                db.query(Job)
                .filter(Job.contractor_id == provider_id)
                .order_by(Job.scheduled_time.asc())
                .all()
            )
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while listing jobs for {provider_id}: {e}")
            raise TransientStoreError("Job store is temporarily unavailable. Please retry.")

    @staticmethod
    def get_provider(db: Session, provider_id: Optional[str]) -> Optional[ProviderProfile]:
        if not provider_id:
            return None
        try:
            return db.query(ProviderProfile).filter(ProviderProfile.id == provider_id).first()
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while loading provider {provider_id}: {e}")
            raise TransientStoreError("Provider store is temporarily unavailable. Please retry.")

    @staticmethod
    def upsert_provider(db: Session, provider_id: str, **fields) -> ProviderProfile:
        """Create or update a provider profile; None values leave a field unchanged"""
        profile = JobRepository.get_provider(db, provider_id)
        if not profile:
            profile = ProviderProfile(id=provider_id)
            db.add(profile)

        for key, value in fields.items():
            if value is not None:
                setattr(profile, key, value)

        try:
            db.commit()
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while saving provider {provider_id}: {e}")
            raise TransientStoreError("Could not save the change. Please retry.")
        db.refresh(profile)
        return profile

    @staticmethod
    def apply_update(db: Session, job: Job, expected_version: int, values: dict) -> Job:
        """
        Write ``values`` only if the row still carries ``expected_version``.

        The update is a single conditional statement that also bumps the version.
        On any failure the transaction is rolled back and nothing is applied.

        Raises:
            ConcurrencyConflictError: The job changed since it was read
            TransientStoreError: The store could not be reached
        """
        if "status" in values and not is_valid_status(values["status"]):
            raise ValidationError(f"Unknown status '{values['status']}'")

        values = dict(values)
        values["version"] = expected_version + 1
        values["updated_at"] = utc_now()

        stmt = (
            update(Job)
            .where(Job.id == job.id, Job.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = db.execute(stmt)
            if result.rowcount != 1:
                db.rollback()
                logger.warning(
                    f"⚠️ Version conflict on job {job.id} (expected version {expected_version})"
                )
                raise ConcurrencyConflictError(
                    "This job was updated by someone else. Refresh and try again."
                )
            db.commit()
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.error(f"❌ Store unavailable while updating job {job.id}: {e}")
            raise TransientStoreError("Could not save the change. Please retry.")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to update job {job.id}: {e}")
            raise

        db.refresh(job)
        return job
