"""
Job layer: task model, run state and orchestration.

Scope:
- Task and MediaFile data models (tagged union on kind)
- Status transitions and validation
- In-memory single-writer registry
- Orchestrator (reelqueue.jobs.engine)

Not included:
- Persistence (state lives for one process)
- Parallel task execution

The orchestrator is imported from reelqueue.jobs.engine directly; it
depends on the deletion package, which itself builds on these models.
"""

from .errors import (
    JobError,
    TaskNotFoundError,
    InvalidStateTransitionError,
    DependencyResolutionError,
    RunInProgressError,
    TaskListNotReadyError,
)
from .models import (
    TaskStatus,
    TaskKind,
    RunPhase,
    TrackedItem,
    MediaFile,
    ConvertTask,
    ConcatTask,
    TrashTask,
    Task,
    TASK_LIST_ADAPTER,
    executable,
    new_id,
)
from .state import (
    RunOutcome,
    can_transition_task,
    can_transition_file,
    can_transition_run,
)
from .registry import JobRegistry, LogWindow

__all__ = [
    # Errors
    "JobError",
    "TaskNotFoundError",
    "InvalidStateTransitionError",
    "DependencyResolutionError",
    "RunInProgressError",
    "TaskListNotReadyError",
    # Models
    "TaskStatus",
    "TaskKind",
    "RunPhase",
    "TrackedItem",
    "MediaFile",
    "ConvertTask",
    "ConcatTask",
    "TrashTask",
    "Task",
    "TASK_LIST_ADAPTER",
    "executable",
    "new_id",
    # State validation
    "RunOutcome",
    "can_transition_task",
    "can_transition_file",
    "can_transition_run",
    # Registry
    "JobRegistry",
    "LogWindow",
]
