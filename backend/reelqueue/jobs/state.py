"""
State transition validation for files, tasks and runs.

Task lifecycle: WAITING → (UPLOADING) → PROCESSING → DONE | ERROR
File lifecycle: (UPLOADING →) WAITING → ERROR
Run lifecycle:  PENDING → RUNNING → COMPLETED | ABORTED | CANCELLED

INVARIANT: Status transitions are monotone. No task re-enters WAITING
after leaving it, and terminal states (DONE, ERROR, SKIPPED) are immutable.
There is no retry transition anywhere: a failed run is rebuilt from scratch.
"""

from enum import Enum
from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import TaskStatus


class RunOutcome(str, Enum):
    """Explicit run state. Terminal values end the run."""

    PENDING = "pending"  # Compiled, not started
    RUNNING = "running"  # Convert/concat phase or trash phase in progress
    COMPLETED = "completed"  # Every executable task done (trash phase may have reported failures)
    ABORTED = "aborted"  # A convert/concat task failed; the rest were skipped
    CANCELLED = "cancelled"  # Stopped by the user


TERMINAL_TASK_STATES: FrozenSet[TaskStatus] = frozenset({
    TaskStatus.DONE,
    TaskStatus.ERROR,
    TaskStatus.SKIPPED,
})

TERMINAL_RUN_STATES: FrozenSet[RunOutcome] = frozenset({
    RunOutcome.COMPLETED,
    RunOutcome.ABORTED,
    RunOutcome.CANCELLED,
})


_TASK_TRANSITIONS: Set[Tuple[TaskStatus, TaskStatus]] = {
    # Import path
    (TaskStatus.WAITING, TaskStatus.UPLOADING),
    (TaskStatus.UPLOADING, TaskStatus.PROCESSING),
    (TaskStatus.UPLOADING, TaskStatus.DONE),
    (TaskStatus.UPLOADING, TaskStatus.ERROR),

    # Execution path
    (TaskStatus.WAITING, TaskStatus.PROCESSING),
    (TaskStatus.PROCESSING, TaskStatus.DONE),
    (TaskStatus.PROCESSING, TaskStatus.ERROR),

    # Failures detected before submission (dependency resolution, stale delete target)
    (TaskStatus.WAITING, TaskStatus.ERROR),

    # Run stopped before this record was reached
    (TaskStatus.WAITING, TaskStatus.SKIPPED),
}


# Source-list files: a blob import starts UPLOADING and becomes WAITING (ready)
# once its bytes are in place. Files are never submitted to the runner.
_FILE_TRANSITIONS: Set[Tuple[TaskStatus, TaskStatus]] = {
    (TaskStatus.UPLOADING, TaskStatus.WAITING),
    (TaskStatus.UPLOADING, TaskStatus.ERROR),
    (TaskStatus.WAITING, TaskStatus.ERROR),
}


_RUN_TRANSITIONS: Set[Tuple[RunOutcome, RunOutcome]] = {
    (RunOutcome.PENDING, RunOutcome.RUNNING),
    (RunOutcome.RUNNING, RunOutcome.COMPLETED),
    (RunOutcome.RUNNING, RunOutcome.ABORTED),
    (RunOutcome.RUNNING, RunOutcome.CANCELLED),
}


def is_task_terminal(status: TaskStatus) -> bool:
    """Check if a task status is terminal (immutable)."""
    return status in TERMINAL_TASK_STATES


def can_transition_task(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """
    Check if a task state transition is legal.

    Staying in the same non-terminal state is allowed (progress updates
    re-assert PROCESSING). Terminal states never change.

    Args:
        from_status: Current task status
        to_status: Target task status

    Returns:
        True if the transition is allowed, False otherwise
    """
    if from_status == to_status:
        return not is_task_terminal(from_status)

    return (from_status, to_status) in _TASK_TRANSITIONS


def can_transition_file(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check if a source-list file state transition is legal."""
    if from_status == to_status:
        return not is_task_terminal(from_status)

    return (from_status, to_status) in _FILE_TRANSITIONS


def can_transition_run(from_outcome: RunOutcome, to_outcome: RunOutcome) -> bool:
    """Check if a run state transition is legal."""
    if from_outcome in TERMINAL_RUN_STATES:
        return False
    return (from_outcome, to_outcome) in _RUN_TRANSITIONS


def validate_task_transition(from_status: TaskStatus, to_status: TaskStatus) -> None:
    """
    Validate a task state transition, raising an exception if illegal.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_task(from_status, to_status):
        raise InvalidStateTransitionError("task", from_status.value, to_status.value)


def validate_file_transition(from_status: TaskStatus, to_status: TaskStatus) -> None:
    """
    Validate a source-list file state transition.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_file(from_status, to_status):
        raise InvalidStateTransitionError("file", from_status.value, to_status.value)


def validate_run_transition(from_outcome: RunOutcome, to_outcome: RunOutcome) -> None:
    """
    Validate a run state transition, raising an exception if illegal.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_run(from_outcome, to_outcome):
        raise InvalidStateTransitionError("run", from_outcome.value, to_outcome.value)
