"""
Deferred delete protocol: two-phase removal over a batch of records.

1. request(): stage every item that needs physical deletion and collect
   {item, token} tickets into a PendingDeletion
2. confirm(): commit every token
3. cancel(): release every token, leaving the list untouched

Two targets share the protocol:

FILES (source list)
- Items without the temp flag are delisted immediately. No service call,
  never physically deleted.
- Temp items are staged. Confirmed items are removed from the list.

TASKS (trash phase of a run)
- Every item is staged: a trash task exists to remove its original file.
- Confirmed tasks become DONE, cancelled ones SKIPPED.

Failure policy (continue-on-error):
- A token that cannot be issued marks its item ERROR and excludes it.
  Any service exception counts, not only DeletionError
- A commit failure marks its item ERROR, is recorded in the DeleteReport,
  and the remaining tokens are still committed
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, List, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..execution.base import DeleteService
from ..jobs.models import MediaFile, TaskKind, TaskStatus, TrackedItem
from ..jobs.registry import JobRegistry
from .errors import DeletionError

logger = logging.getLogger(__name__)


class DeleteTarget(str, Enum):
    """Which registry list a deletion batch belongs to."""

    FILES = "files"
    TASKS = "tasks"


class DeleteTicket(BaseModel):
    """One staged deletion. token is empty for delisted non-temp items."""

    model_config = ConfigDict(extra="forbid")

    item_id: str
    path: str
    token: str = ""


class DeleteFailure(BaseModel):
    """One item that could not be staged or committed."""

    model_config = ConfigDict(extra="forbid")

    item_id: str
    path: str
    reason: str


class PendingDeletion(BaseModel):
    """Staged batch awaiting confirm() or cancel()."""

    model_config = ConfigDict(extra="forbid")

    target: DeleteTarget = DeleteTarget.FILES
    tickets: List[DeleteTicket] = Field(default_factory=list)
    delisted: List[str] = Field(default_factory=list)
    failures: List[DeleteFailure] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.tickets)

    @property
    def is_empty(self) -> bool:
        return not self.tickets


class DeleteReport(BaseModel):
    """Outcome of confirm()."""

    model_config = ConfigDict(extra="forbid")

    confirmed: List[str] = Field(default_factory=list)
    failures: List[DeleteFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def failure_reason(error: Exception) -> str:
    """Message recorded for a service failure."""
    if isinstance(error, DeletionError):
        return str(error)
    return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__


def item_path(item: TrackedItem) -> str:
    """Filesystem path a record refers to."""
    if isinstance(item, MediaFile):
        return item.path
    source_paths = getattr(item, "source_paths", None) or []
    return source_paths[0] if source_paths else ""


def requires_token(item: TrackedItem, target: DeleteTarget) -> bool:
    """Trash tasks are always staged; source files only when temp-flagged."""
    if target == DeleteTarget.TASKS:
        return getattr(item, "kind", None) == TaskKind.TRASH or item.is_temp
    return item.is_temp


class DeleteProtocol:
    """
    Stage → confirm / cancel over a DeleteService.

    All list mutations go through the registry command surface.
    """

    def __init__(
        self,
        service: DeleteService,
        registry: JobRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._service = service
        self._registry = registry
        self._clock = clock

    async def request(
        self,
        items: Sequence[TrackedItem],
        target: DeleteTarget = DeleteTarget.FILES,
    ) -> PendingDeletion:
        """
        Stage a batch.

        Args:
            items: Records selected for deletion
            target: Registry list the records belong to

        Returns:
            PendingDeletion with one ticket per staged item
        """
        pending = PendingDeletion(target=target)

        for item in items:
            path = item_path(item)

            if not requires_token(item, target):
                if target == DeleteTarget.TASKS:
                    self._registry.remove_tasks([item.id])
                else:
                    self._registry.remove_files([item.id])
                pending.delisted.append(item.id)
                logger.info(f"[DELETE] Delisted non-temp item {item.id} ({path})")
                continue

            try:
                token = await self._service.request_delete(path)
            except Exception as e:
                reason = failure_reason(e)
                pending.failures.append(DeleteFailure(item_id=item.id, path=path, reason=reason))
                self._mark_error(item.id, target, reason)
                logger.warning(f"[DELETE] Could not stage {path}: {reason}")
                continue

            pending.tickets.append(DeleteTicket(item_id=item.id, path=path, token=token))

        logger.info(
            f"[DELETE] Staged {pending.size} item(s), delisted {len(pending.delisted)}, "
            f"failed {len(pending.failures)}"
        )
        return pending

    async def confirm(self, pending: PendingDeletion) -> DeleteReport:
        """
        Commit every staged token.

        Returns:
            DeleteReport listing confirmed ids and per-item failures
        """
        report = DeleteReport()
        confirmed_files: List[str] = []

        for ticket in pending.tickets:
            if pending.target == DeleteTarget.TASKS:
                self._registry.update_task(
                    ticket.item_id, status=TaskStatus.PROCESSING, started_at=self._clock()
                )

            try:
                await self._service.confirm_delete(ticket.token)
            except Exception as e:
                reason = failure_reason(e)
                report.failures.append(
                    DeleteFailure(item_id=ticket.item_id, path=ticket.path, reason=reason)
                )
                self._mark_error(ticket.item_id, pending.target, reason)
                logger.error(f"[DELETE] Commit failed for {ticket.path}: {reason}")
                continue

            report.confirmed.append(ticket.item_id)
            if pending.target == DeleteTarget.TASKS:
                self._registry.update_task(
                    ticket.item_id,
                    status=TaskStatus.DONE,
                    progress=100.0,
                    completed_at=self._clock(),
                )
            else:
                confirmed_files.append(ticket.item_id)
            self._registry.add_log(f"Moved to trash: {ticket.path}")

        if confirmed_files:
            self._registry.remove_files(confirmed_files)

        pending.tickets.clear()
        logger.info(
            f"[DELETE] Confirmed {len(report.confirmed)} item(s), "
            f"{len(report.failures)} failure(s)"
        )
        return report

    async def cancel(self, pending: PendingDeletion) -> None:
        """Release every staged token. Source list entries stay listed."""
        for ticket in pending.tickets:
            try:
                await self._service.cancel_delete(ticket.token)
            except Exception as e:
                logger.warning(f"[DELETE] Could not release {ticket.path}: {failure_reason(e)}")
            if pending.target == DeleteTarget.TASKS:
                self._registry.update_task(ticket.item_id, status=TaskStatus.SKIPPED)

        logger.info(f"[DELETE] Cancelled {pending.size} staged deletion(s)")
        pending.tickets.clear()

    def _mark_error(self, item_id: str, target: DeleteTarget, reason: str) -> None:
        self._registry.add_log(f"Error: {reason}")
        if target == DeleteTarget.TASKS:
            self._registry.update_task(item_id, status=TaskStatus.ERROR, failure_reason=reason)
            return

        if not self._registry.has_file(item_id):
            return
        current = self._registry.get_file(item_id)
        if current.status == TaskStatus.ERROR:
            self._registry.update_file(item_id, failure_reason=reason)
        else:
            self._registry.update_file(item_id, status=TaskStatus.ERROR, failure_reason=reason)


def find_items(registry: JobRegistry, ids: Sequence[str]) -> List[TrackedItem]:
    """Snapshot the source-list records for the given ids (unknown ids skipped)."""
    wanted = set(ids)
    return [f for f in registry.files() if f.id in wanted]

