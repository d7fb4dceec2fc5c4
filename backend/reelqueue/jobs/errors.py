"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Errors are explicit and provide actionable messages.
"""

from typing import List


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class TaskNotFoundError(JobError):
    """Raised when a task or file id is not present in the registry."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid {entity_type} state transition: "
            f"{current_state} -> {target_state}"
        )


class DependencyResolutionError(JobError):
    """
    Raised when a concat task resolves zero input paths.

    The task is failed without being submitted, and the run aborts.
    """

    def __init__(self, task_id: str, refs: List[str]):
        self.task_id = task_id
        self.refs = list(refs)
        super().__init__(
            f"Could not resolve any input for task {task_id} "
            f"(refs: {', '.join(self.refs) or 'none'})"
        )


class RunInProgressError(JobError):
    """Raised when a second run is started while one is active."""

    def __init__(self):
        super().__init__("A run is already in progress")


class TaskListNotReadyError(JobError):
    """
    Raised when a run is started on a list that is not freshly compiled.

    Every task must be WAITING; a finished list is recompiled, never rerun.
    """

    def __init__(self, task_id: str, status: str):
        self.task_id = task_id
        self.status = status
        super().__init__(
            f"Task {task_id} is {status}; compile the recipe again before running"
        )
