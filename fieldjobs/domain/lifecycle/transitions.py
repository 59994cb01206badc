"""
Job status state machine

The transition table below is the single source of truth for which status
changes are legal. Every service that writes a status goes through
validate_status_transition / assert_transition before persisting.

Action permissions are a separate check: an action can be blocked by the
job's current status even when no status change is involved.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional

from ...shared.errors import ActionNotPermittedError, InvalidTransitionError


class JobStatus(str, Enum):
    PENDING = "pending"
    QUOTED = "quoted"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    SCHEDULING = "scheduling"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    PENDING_COMPLETION = "pending_completion"
    REVISION_REQUESTED = "revision_requested"
    CANCELLATION_REQUESTED = "cancellation_requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Party(str, Enum):
    """The two sides of a job negotiation"""

    PROVIDER = "provider"
    CUSTOMER = "customer"


VALID_STATUSES = frozenset(s.value for s in JobStatus)

VALID_PARTIES = frozenset(p.value for p in Party)

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED.value, JobStatus.CANCELLED.value})

STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"accepted", "cancelled", "scheduled", "quoted", "scheduling"}),
    "quoted": frozenset({"scheduling", "cancelled"}),
    "scheduling": frozenset({"scheduling", "scheduled", "quoted", "cancelled"}),
    "accepted": frozenset(
        {"scheduled", "cancelled", "cancellation_requested", "confirmed", "scheduling"}
    ),
    "confirmed": frozenset({"scheduled", "cancelled", "cancellation_requested", "scheduling"}),
    "scheduled": frozenset(
        {"in_progress", "cancelled", "cancellation_requested", "pending_completion", "completed"}
    ),
    "in_progress": frozenset(
        {"pending_completion", "cancelled", "cancellation_requested", "completed"}
    ),
    "pending_completion": frozenset({"completed", "revision_requested"}),
    "revision_requested": frozenset({"pending_completion", "completed"}),
    # Denying a cancellation request restores the job
    "cancellation_requested": frozenset({"cancelled", "scheduled", "confirmed"}),
    "cancelled": frozenset(),
    "completed": frozenset(),
}

# Statuses in which each action is refused
ACTION_BLOCKED_STATUSES: dict[str, frozenset[str]] = {
    "schedule": frozenset({"cancelled", "completed", "pending_completion"}),
    "assign_tech": frozenset({"cancelled", "completed"}),
    "start_work": frozenset({"cancelled", "completed", "pending_completion"}),
    "complete": frozenset({"cancelled", "completed", "pending_completion"}),
    # Messaging and billing stay open after completion for follow-up
    "message": frozenset({"cancelled"}),
    "invoice": frozenset({"cancelled"}),
    "collect_payment": frozenset({"cancelled"}),
    "cancel": frozenset({"cancelled", "completed", "pending_completion", "revision_requested"}),
}

# Extra per-action blocks that carry their own reason
ACTION_SPECIAL_BLOCKS: dict[tuple[str, str], str] = {
    ("start_work", "cancellation_requested"): "Cannot start work - cancellation request pending",
}


class TransitionResult(NamedTuple):
    valid: bool
    reason: Optional[str] = None


class ActionCheck(NamedTuple):
    allowed: bool
    reason: Optional[str] = None


def _status_value(status: Any) -> Optional[str]:
    if isinstance(status, JobStatus):
        return status.value
    return status


def is_valid_status(status: Any) -> bool:
    return _status_value(status) in VALID_STATUSES


def is_terminal(status: Any) -> bool:
    return _status_value(status) in TERMINAL_STATUSES


def allowed_next_statuses(status: Any) -> frozenset[str]:
    return STATUS_TRANSITIONS.get(_status_value(status), frozenset())


def validate_status_transition(current_status: Any, new_status: Any) -> TransitionResult:
    """
    Validate a job status transition against the transition table.

    Args:
        current_status: Current job status
        new_status: Desired new status

    Returns:
        TransitionResult: valid flag plus a reason when invalid
    """
    current = _status_value(current_status)
    new = _status_value(new_status)

    if new not in VALID_STATUSES:
        return TransitionResult(False, f"Unknown status '{new}'")

    if current not in VALID_STATUSES:
        return TransitionResult(False, f"Unknown status '{current}'")

    if new not in STATUS_TRANSITIONS[current]:
        return TransitionResult(False, f"Cannot transition from '{current}' to '{new}'")

    return TransitionResult(True)


def assert_transition(current_status: Any, new_status: Any) -> None:
    """Raise InvalidTransitionError unless the transition is in the table"""
    result = validate_status_transition(current_status, new_status)
    if not result.valid:
        raise InvalidTransitionError(
            _status_value(current_status), _status_value(new_status), result.reason
        )


def can_perform_action(job: Any, action: str) -> ActionCheck:
    """
    Check whether a named action is allowed in the job's current status.

    Works on ORM jobs and plain dict snapshots. Unknown actions are allowed.
    """
    status = job.get("status") if isinstance(job, dict) else getattr(job, "status", None)
    status = _status_value(status)

    if status in ACTION_BLOCKED_STATUSES.get(action, ()):
        return ActionCheck(False, f"Cannot {action.replace('_', ' ')} - job is {status}")

    special_reason = ACTION_SPECIAL_BLOCKS.get((action, status))
    if special_reason:
        return ActionCheck(False, special_reason)

    return ActionCheck(True)


def assert_action_allowed(job: Any, action: str) -> None:
    check = can_perform_action(job, action)
    if not check.allowed:
        raise ActionNotPermittedError(check.reason)
