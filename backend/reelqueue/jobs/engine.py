"""
Job orchestrator: executes a compiled task list.

Manages run lifecycle: run, progress intake, cancel.
Convert/concat tasks execute strictly in list order, one at a time.
Trash tasks are handed to the delete protocol as a separate phase.

Run rules:
- Before submit: PROCESSING, progress 0, started_at stamped
- Concat inputs are resolved against this run's results map only
  (temp_chunk preferred, main as fallback)
- On success: result stored by task id, DONE, progress 100,
  encoded_size = main output size, completed_at stamped
- On failure: ERROR + log line, the rest of the queue is abandoned
  (fail-fast; earlier results are kept)
- Tasks never reached by an aborted or cancelled run become SKIPPED
- An aborted or cancelled run never deletes anything

============================================================================
NO RETRIES
============================================================================
There is no retry or requeue path. A failed run is recompiled and rerun
from scratch.
============================================================================
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..deletion.protocol import DeleteProtocol, DeleteReport, DeleteTarget, PendingDeletion
from ..execution.base import ProcessRunner
from ..execution.progress import EventChannel, ProgressEvent
from ..execution.results import EncodeResult
from .errors import (
    DependencyResolutionError,
    RunInProgressError,
    TaskListNotReadyError,
    TaskNotFoundError,
)
from .models import ConcatTask, RunPhase, Task, TaskKind, TaskStatus, executable
from .registry import JobRegistry
from .state import RunOutcome, validate_run_transition

logger = logging.getLogger(__name__)


# Live progress never reaches 100 before the runner reports success
MAX_LIVE_PROGRESS = 99.9

CANCELLED_REASON = "Cancelled by user"


ConfirmCallback = Callable[[PendingDeletion], Awaitable[bool]]


class RunReport(BaseModel):
    """Outcome of one orchestrated run."""

    model_config = ConfigDict(extra="forbid")

    outcome: RunOutcome
    results: Dict[str, EncodeResult] = Field(default_factory=dict)
    failed_task_id: Optional[str] = None
    failure_reason: Optional[str] = None
    skipped_task_ids: List[str] = Field(default_factory=list)
    deletion: Optional[DeleteReport] = None


def resolve_dependencies(task: ConcatTask, results: Dict[str, EncodeResult]) -> List[str]:
    """
    Resolve a concat task's refs to input paths, in ref order.

    Refs without a usable result are dropped.

    Raises:
        DependencyResolutionError: If no ref resolves
    """
    paths: List[str] = []
    for ref in task.dependency_refs:
        result = results.get(ref)
        if result is None:
            continue
        path = result.dependency_path()
        if path:
            paths.append(path)

    if not paths:
        raise DependencyResolutionError(task.id, task.dependency_refs)
    return paths


class JobOrchestrator:
    """
    Runs the registry's task list against a ProcessRunner.

    Subscribes to the runner's EventChannel: progress events are applied
    only to the task currently tracked by the registry; log lines go to
    the registry's log window.
    """

    def __init__(
        self,
        registry: JobRegistry,
        runner: ProcessRunner,
        channel: Optional[EventChannel] = None,
        delete_protocol: Optional[DeleteProtocol] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Single writer for task state
            runner: External encoder
            channel: Event channel the runner publishes on
            delete_protocol: Protocol for the trash phase (None = trash tasks skipped)
            clock: Time source for timestamps
        """
        self.registry = registry
        self.runner = runner
        self.delete_protocol = delete_protocol
        self._clock = clock
        self._outcome = RunOutcome.PENDING
        self._running = False
        self._cancel_requested = False

        if channel is not None:
            channel.subscribe_progress(self.handle_progress)
            channel.subscribe_log(self.handle_log)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def outcome(self) -> RunOutcome:
        return self._outcome

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        tasks: Optional[List[Task]] = None,
        confirm_delete: Optional[ConfirmCallback] = None,
    ) -> RunReport:
        """
        Execute a task list.

        Args:
            tasks: Compiled tasks to install before running
                   (None = run what the registry already holds)
            confirm_delete: Asked before the trash phase commits;
                            returning False cancels every staged deletion.
                            None confirms automatically.

        Returns:
            RunReport with the terminal outcome

        Raises:
            RunInProgressError: If a run is already active
            TaskListNotReadyError: If any task has already left WAITING
        """
        if self._running:
            raise RunInProgressError()

        if tasks is not None:
            self.registry.set_tasks(tasks)

        for task in self.registry.tasks():
            if task.status != TaskStatus.WAITING:
                raise TaskListNotReadyError(task.id, task.status.value)

        self._running = True
        self._cancel_requested = False
        self._outcome = RunOutcome.PENDING
        report = RunReport(outcome=RunOutcome.PENDING)

        try:
            self._transition(RunOutcome.RUNNING)
            self.registry.set_phase(RunPhase.CONVERTING)
            self.registry.set_start_time(self._clock())

            task_list = self.registry.tasks()
            logger.info(f"[LIFECYCLE] Run started with {len(task_list)} task(s)")

            for task in task_list:
                if not executable(task):
                    continue
                if self._cancel_requested:
                    self._transition(RunOutcome.CANCELLED)
                    break

                ok = await self._execute_task(task, report)
                if not ok:
                    self._transition(
                        RunOutcome.CANCELLED if self._cancel_requested else RunOutcome.ABORTED
                    )
                    break

            if self._outcome == RunOutcome.RUNNING:
                trash_tasks = [t for t in task_list if t.kind == TaskKind.TRASH]
                if trash_tasks:
                    report.deletion = await self._run_trash_phase(trash_tasks, confirm_delete)
                if self._cancel_requested:
                    self._transition(RunOutcome.CANCELLED)
                else:
                    self._transition(RunOutcome.COMPLETED)

            if self._outcome in (RunOutcome.ABORTED, RunOutcome.CANCELLED):
                report.skipped_task_ids = self._skip_waiting()

        finally:
            self.registry.set_current_task(None)
            self.registry.set_end_time(self._clock())
            self._running = False

        report.outcome = self._outcome
        logger.info(f"[LIFECYCLE] Run finished: {self._outcome.value}")
        return report

    async def cancel(self) -> bool:
        """
        Stop the active run.

        The in-flight encode is terminated through the runner; the task
        becomes ERROR ("Cancelled by user") and waiting tasks SKIPPED.

        Returns:
            True if a run was active
        """
        if not self._running:
            return False

        self._cancel_requested = True
        current = self.registry.current_task_id
        logger.info(f"[LIFECYCLE] Cancel requested (in-flight task: {current})")
        if current is not None:
            await self.runner.cancel(current)
        return True

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def handle_progress(self, event: ProgressEvent) -> None:
        """
        Apply a progress event to the current task.

        Events tagged with any other id are stale and discarded.
        Progress never decreases and stays below 100 until DONE.
        """
        current = self.registry.current_task_id
        if current is None or event.task_id != current:
            logger.debug(f"[PROGRESS] Discarded event for {event.task_id} (current: {current})")
            return

        try:
            task = self.registry.get_task(current)
        except TaskNotFoundError:
            return

        if task.status != TaskStatus.PROCESSING:
            return

        target_duration = task.expected_duration or task.duration
        progress = task.progress
        if target_duration > 0:
            live = min(100.0 * event.time_sec / target_duration, MAX_LIVE_PROGRESS)
            progress = max(task.progress, live)

        self.registry.update_task(
            current,
            progress=progress,
            encoded_size=max(event.size, 0),
        )

    def handle_log(self, line: str) -> None:
        self.registry.add_log(line)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute_task(self, task: Task, report: RunReport) -> bool:
        """Run one convert/concat task. Returns False when the run must stop."""
        request = task.request

        if task.kind == TaskKind.CONCAT:
            try:
                paths = resolve_dependencies(task, report.results)
            except DependencyResolutionError as e:
                self._fail(task.id, str(e), report)
                return False
            request = request.with_input_paths(paths)
            logger.info(f"[LIFECYCLE] Task {task.id} resolved {len(paths)} input(s)")

        self.registry.update_task(
            task.id,
            status=TaskStatus.PROCESSING,
            progress=0.0,
            started_at=self._clock(),
        )
        self.registry.set_current_task(task.id)
        self.registry.add_log(f"Processing: {task.display_name}")

        try:
            result = await self.runner.run(request, task.id)
        except Exception as e:
            reason = CANCELLED_REASON if self._cancel_requested else str(e)
            self._fail(task.id, reason, report, exc_info=not self._cancel_requested)
            return False
        finally:
            self.registry.set_current_task(None)

        report.results[task.id] = result
        main = result.main
        self.registry.update_task(
            task.id,
            status=TaskStatus.DONE,
            progress=100.0,
            encoded_size=main.size if main else 0,
            completed_at=self._clock(),
        )
        self.registry.add_log(f"Done: {task.display_name}")
        logger.info(f"[COMPLETION] Task {task.id} done: {main.path if main else 'no main output'}")
        return True

    async def _run_trash_phase(
        self,
        trash_tasks: List[Task],
        confirm_delete: Optional[ConfirmCallback],
    ) -> Optional[DeleteReport]:
        if self.delete_protocol is None:
            logger.warning("[DELETE] No delete protocol configured; trash tasks skipped")
            for task in trash_tasks:
                self.registry.update_task(task.id, status=TaskStatus.SKIPPED)
            return None

        pending = await self.delete_protocol.request(trash_tasks, DeleteTarget.TASKS)
        if pending.is_empty:
            return DeleteReport(failures=list(pending.failures))

        approved = True
        if self._cancel_requested:
            approved = False
        elif confirm_delete is not None:
            approved = await confirm_delete(pending)

        if not approved:
            await self.delete_protocol.cancel(pending)
            self.registry.add_log("Deletion cancelled")
            return DeleteReport(failures=list(pending.failures))

        deletion = await self.delete_protocol.confirm(pending)
        deletion.failures = list(pending.failures) + deletion.failures
        return deletion

    def _fail(self, task_id: str, reason: str, report: RunReport, exc_info: bool = False) -> None:
        self.registry.update_task(
            task_id,
            status=TaskStatus.ERROR,
            failure_reason=reason,
            completed_at=self._clock(),
        )
        self.registry.add_log(f"Error: {reason}")
        report.failed_task_id = task_id
        report.failure_reason = reason
        logger.error(f"[COMPLETION] Task {task_id} FAILED: {reason}", exc_info=exc_info)

    def _skip_waiting(self) -> List[str]:
        skipped = []
        for task in self.registry.tasks():
            if task.status == TaskStatus.WAITING:
                self.registry.update_task(task.id, status=TaskStatus.SKIPPED)
                skipped.append(task.id)
        if skipped:
            logger.info(f"[LIFECYCLE] Skipped {len(skipped)} unreached task(s)")
        return skipped

    def _transition(self, target: RunOutcome) -> None:
        validate_run_transition(self._outcome, target)
        self._outcome = target
