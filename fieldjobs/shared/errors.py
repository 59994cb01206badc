"""Typed failures raised by the job coordination services.

Validation and permission errors are resolved before any write is attempted.
Transient store errors are kept distinct so callers can offer a retry instead
of reporting the action as not allowed.
"""

from typing import Optional


class JobCoordinationError(Exception):
    """Base class for every failure a negotiation or lifecycle action can report"""

    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "error": type(self).__name__,
            "retryable": self.retryable,
        }


class ValidationError(JobCoordinationError):
    """Bad input: missing date/time, past date, beyond the horizon, bad amount"""

    status_code = 400


class ActionNotPermittedError(JobCoordinationError):
    """The action is not allowed for this job status or for this party"""

    status_code = 403


class InvalidTransitionError(ActionNotPermittedError):
    def __init__(self, current_status: str, new_status: str, reason: Optional[str] = None):
        super().__init__(reason or f"Cannot transition from '{current_status}' to '{new_status}'")
        self.current_status = current_status
        self.new_status = new_status


class JobNotFoundError(JobCoordinationError):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__("Job not found")
        self.job_id = job_id


class ConcurrencyConflictError(JobCoordinationError):
    """The job changed since it was read; the write was not applied"""

    status_code = 409


class ImpactConfirmationRequired(JobCoordinationError):
    """A destructive action needs the caller to acknowledge its schedule impact first"""

    status_code = 409

    def __init__(self, impact: dict):
        super().__init__(
            "This job is on the schedule. Review the impact and confirm to continue."
        )
        self.impact = impact

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["impact"] = self.impact
        return data


class TransientStoreError(JobCoordinationError):
    """Connectivity loss or backend unavailability while reading or writing a job"""

    status_code = 503
    retryable = True
