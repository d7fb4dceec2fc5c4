"""
In-memory job state registry.

The registry is the SINGLE WRITER for all run state:
- The source list (imported MediaFile records)
- The task list (compiled Task records)
- The run phase, run start time and currently executing task id
- The trailing log window

Every mutation goes through a command method (add / remove / update /
set-phase). Readers receive deep copies, so a snapshot can never be used
to mutate state behind the registry's back.

Records are addressed by id, never by list index. Out-of-order updates
(e.g. analysis results finishing in any order) cannot touch an unrelated
record.

No persistence: state lives for one process.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence, Set

from .errors import TaskNotFoundError
from .models import MediaFile, RunPhase, Task, TaskKind, TaskStatus, TrackedItem
from .state import validate_file_transition, validate_task_transition

logger = logging.getLogger(__name__)


DEFAULT_LOG_WINDOW = 100


class LogWindow:
    """Bounded trailing window of log lines (oldest dropped first)."""

    def __init__(self, max_entries: int = DEFAULT_LOG_WINDOW):
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._lines: Deque[str] = deque(maxlen=max_entries)

    @property
    def max_entries(self) -> int:
        return self._lines.maxlen or 0

    def append(self, line: str) -> None:
        self._lines.append(line)

    def lines(self) -> List[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


def validate_task_list(tasks: Sequence[Task]) -> None:
    """
    Check the construction-time guarantees of a compiled task list.

    - Task ids are unique
    - Concat refs point only to tasks strictly earlier in the list
    - Trash tasks trail every convert/concat task

    Raises:
        ValueError: If any guarantee is violated
    """
    seen: Set[str] = set()
    trash_started = False

    for index, task in enumerate(tasks):
        if task.id in seen:
            raise ValueError(f"Duplicate task id at position {index}: {task.id}")

        if task.kind == TaskKind.TRASH:
            trash_started = True
        elif trash_started:
            raise ValueError(
                f"Task {task.id} ({task.kind}) at position {index} follows a trash task"
            )

        if task.kind == TaskKind.CONCAT:
            unknown = [ref for ref in task.dependency_refs if ref not in seen]
            if unknown:
                raise ValueError(
                    f"Concat task {task.id} references tasks that do not precede it: {unknown}"
                )

        seen.add(task.id)


class JobRegistry:
    """
    Single-writer container for files, tasks and run state.

    All public readers return copies. All writers validate status
    transitions before applying them.
    """

    def __init__(self, log_window_size: int = DEFAULT_LOG_WINDOW):
        """
        Initialize registry.

        Args:
            log_window_size: Number of trailing log lines retained
        """
        self._lock = threading.RLock()
        self._files: List[MediaFile] = []
        self._tasks: List[Task] = []
        self._phase: RunPhase = RunPhase.IDLE
        self._start_time: Optional[datetime] = None
        self._end_time: Optional[datetime] = None
        self._current_task_id: Optional[str] = None
        self._log = LogWindow(log_window_size)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def files(self) -> List[MediaFile]:
        """Snapshot of the source list."""
        with self._lock:
            return [f.model_copy(deep=True) for f in self._files]

    def tasks(self) -> List[Task]:
        """Snapshot of the task list."""
        with self._lock:
            return [t.model_copy(deep=True) for t in self._tasks]

    def get_file(self, file_id: str) -> MediaFile:
        """
        Snapshot of a single file.

        Raises:
            TaskNotFoundError: If the id is unknown
        """
        with self._lock:
            return self._find(self._files, file_id).model_copy(deep=True)

    def get_task(self, task_id: str) -> Task:
        """
        Snapshot of a single task.

        Raises:
            TaskNotFoundError: If the id is unknown
        """
        with self._lock:
            return self._find(self._tasks, task_id).model_copy(deep=True)

    def has_file(self, file_id: str) -> bool:
        with self._lock:
            return any(f.id == file_id for f in self._files)

    @property
    def phase(self) -> RunPhase:
        return self._phase

    @property
    def start_time(self) -> Optional[datetime]:
        return self._start_time

    @property
    def end_time(self) -> Optional[datetime]:
        """When the last run reached a terminal outcome (None while running)."""
        return self._end_time

    @property
    def current_task_id(self) -> Optional[str]:
        """Id of the task whose progress signals are currently accepted."""
        return self._current_task_id

    def log(self) -> List[str]:
        """Snapshot of the trailing log window."""
        with self._lock:
            return self._log.lines()

    def observed_items(self) -> List[TrackedItem]:
        """
        The list the metrics engine should observe.

        The task list while converting, the source list otherwise.
        """
        if self._phase == RunPhase.CONVERTING:
            return list(self.tasks())
        return list(self.files())

    # ------------------------------------------------------------------
    # Source list commands
    # ------------------------------------------------------------------

    def add_files(self, files: Iterable[MediaFile]) -> None:
        """
        Append files to the source list.

        Raises:
            ValueError: If an id is already present
        """
        with self._lock:
            existing = {f.id for f in self._files}
            incoming = list(files)
            for media in incoming:
                if media.id in existing:
                    raise ValueError(f"File with ID '{media.id}' already exists")
                existing.add(media.id)
            self._files.extend(m.model_copy(deep=True) for m in incoming)

    def update_file(self, file_id: str, **updates: Any) -> MediaFile:
        """
        Apply field updates to one file.

        Status changes are validated against the file lifecycle.

        Returns:
            Snapshot of the updated file

        Raises:
            TaskNotFoundError: If the id is unknown
            InvalidStateTransitionError: If the status change is illegal
        """
        with self._lock:
            media = self._find(self._files, file_id)
            if "status" in updates:
                updates["status"] = TaskStatus(updates["status"])
                validate_file_transition(media.status, updates["status"])
            self._apply(media, updates)
            return media.model_copy(deep=True)

    def remove_files(self, file_ids: Iterable[str]) -> int:
        """
        Delist files. Unknown ids are ignored.

        Returns:
            Number of files removed
        """
        ids = set(file_ids)
        with self._lock:
            before = len(self._files)
            self._files = [f for f in self._files if f.id not in ids]
            return before - len(self._files)

    # ------------------------------------------------------------------
    # Task list commands
    # ------------------------------------------------------------------

    def set_tasks(self, tasks: Sequence[Task]) -> None:
        """
        Replace the task list with a freshly compiled one.

        Raises:
            ValueError: If the list violates construction-time guarantees
        """
        validate_task_list(tasks)
        with self._lock:
            self._tasks = [t.model_copy(deep=True) for t in tasks]
            self._current_task_id = None

    def update_task(self, task_id: str, **updates: Any) -> Task:
        """
        Apply field updates to one task.

        Status changes are validated against the task lifecycle.

        Returns:
            Snapshot of the updated task

        Raises:
            TaskNotFoundError: If the id is unknown
            InvalidStateTransitionError: If the status change is illegal
        """
        with self._lock:
            task = self._find(self._tasks, task_id)
            if "status" in updates:
                updates["status"] = TaskStatus(updates["status"])
                validate_task_transition(task.status, updates["status"])
            self._apply(task, updates)
            return task.model_copy(deep=True)

    def remove_tasks(self, task_ids: Iterable[str]) -> int:
        """Remove tasks by id. Unknown ids are ignored."""
        ids = set(task_ids)
        with self._lock:
            before = len(self._tasks)
            self._tasks = [t for t in self._tasks if t.id not in ids]
            return before - len(self._tasks)

    def set_current_task(self, task_id: Optional[str]) -> None:
        """Track which task's progress signals are accepted (None = none)."""
        with self._lock:
            self._current_task_id = task_id

    # ------------------------------------------------------------------
    # Run state commands
    # ------------------------------------------------------------------

    def set_phase(self, phase: RunPhase) -> None:
        with self._lock:
            if phase != self._phase:
                logger.info(f"[LIFECYCLE] Phase {self._phase.value} -> {phase.value}")
            self._phase = phase

    def set_start_time(self, start_time: Optional[datetime]) -> None:
        with self._lock:
            self._start_time = start_time
            self._end_time = None

    def set_end_time(self, end_time: Optional[datetime]) -> None:
        with self._lock:
            self._end_time = end_time

    def add_log(self, line: str) -> None:
        with self._lock:
            self._log.append(line)

    def clear_all(self) -> None:
        """Reset every piece of run state."""
        with self._lock:
            self._files.clear()
            self._tasks.clear()
            self._phase = RunPhase.IDLE
            self._start_time = None
            self._end_time = None
            self._current_task_id = None
            self._log.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _find(records: List[Any], record_id: str) -> Any:
        for record in records:
            if record.id == record_id:
                return record
        raise TaskNotFoundError(record_id)

    @staticmethod
    def _apply(record: TrackedItem, updates: Dict[str, Any]) -> None:
        if "id" in updates:
            raise ValueError("Record id cannot be changed")
        unknown = [key for key in updates if key not in type(record).model_fields]
        if unknown:
            raise ValueError(f"Unknown field(s) for {type(record).__name__}: {unknown}")
        for key, value in updates.items():
            setattr(record, key, value)
