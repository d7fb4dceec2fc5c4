"""
Task and MediaFile data models.

Two record families share one set of tracked fields (status, progress,
sizes, timestamps) so the metrics engine can observe either list:
- MediaFile: an imported source file (the setup list)
- Task: one unit of orchestrated work (the run queue)

Tasks are a tagged union on `kind`. Each variant carries exactly the
fields it needs:
- ConvertTask: one source path, one EncodeRequest
- ConcatTask: EncodeRequest + ordered dependency_refs (producer task ids)
- TrashTask: the original path to delete, no request

All models use Pydantic for validation.
State transitions are validated externally (see state.py).
"""

import uuid
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from ..execution.requests import DestinationRule, EncodeRequest


def new_id() -> str:
    """Generate an opaque unique id (UUIDv4)."""
    return str(uuid.uuid4())


class TaskStatus(str, Enum):
    """
    Status of a file or task.

    waiting → (uploading) → processing → done | error
    waiting → skipped (run ended before the task was reached)
    """

    WAITING = "waiting"  # Not started
    UPLOADING = "uploading"  # Bytes are being transferred in
    PROCESSING = "processing"  # Submitted to an external collaborator
    DONE = "done"  # Finished successfully
    ERROR = "error"  # Failed (failure_reason is set)
    SKIPPED = "skipped"  # Never attempted because the run stopped early


class TaskKind(str, Enum):
    """Task variant tag."""

    CONVERT = "convert"
    CONCAT = "concat"
    TRASH = "trash"


class RunPhase(str, Enum):
    """What the surrounding application is currently doing."""

    IDLE = "idle"
    IMPORTING = "importing"
    CONVERTING = "converting"


class TrackedItem(BaseModel):
    """
    Fields shared by every record the metrics engine observes.

    Sizes are bytes, durations are seconds.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=new_id)

    # State
    status: TaskStatus = TaskStatus.WAITING
    progress: float = 0.0  # 0-100

    # Source media metrics
    size: int = 0
    duration: float = 0.0

    # Output size, live while processing and final when done
    encoded_size: int = 0

    # Optional declared output size (used for size projection)
    expected_size: Optional[int] = None

    # Playback-speed multiplier applied to the output (60 → 60x faster)
    time_scale: Optional[float] = None

    # Transient artifact eligible for staged deletion
    is_temp: bool = False

    # Timestamps
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Outcome
    failure_reason: Optional[str] = None

    @property
    def expected_duration(self) -> Optional[float]:
        """Duration of the produced media, adjusted by time_scale."""
        if self.time_scale and self.duration:
            return self.duration / self.time_scale
        return None

    @property
    def weight(self) -> float:
        """Progress weight: expected duration, else raw duration, else 1."""
        return self.expected_duration or self.duration or 1.0


class MediaFile(TrackedItem):
    """An imported source file."""

    path: str
    has_video: bool = False
    has_audio: bool = False

    # Per-file output placement chosen in the setup list (None = recipe default)
    output_destination: Optional[DestinationRule] = None

    @property
    def display_name(self) -> str:
        return PurePath(self.path).name or self.path


class _TaskBase(TrackedItem):
    """Fields common to every task variant."""

    # Ordered input paths (display label for concat until resolved)
    source_paths: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        if not self.source_paths:
            return self.id
        first = self.source_paths[0]
        return PurePath(first).name or first


class ConvertTask(_TaskBase):
    """Encode one source file."""

    kind: Literal["convert"] = "convert"
    request: EncodeRequest

    @model_validator(mode="after")
    def _single_source(self) -> "ConvertTask":
        if len(self.source_paths) != 1:
            raise ValueError(
                f"Convert task requires exactly one source path (received {len(self.source_paths)})"
            )
        return self


class ConcatTask(_TaskBase):
    """
    Merge the outputs of earlier tasks.

    dependency_refs are resolved at execution time against the run's
    results map; the producers' output paths do not exist before then.
    """

    kind: Literal["concat"] = "concat"
    request: EncodeRequest
    dependency_refs: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _has_refs(self) -> "ConcatTask":
        if not self.dependency_refs:
            raise ValueError("Concat task requires at least one dependency ref")
        return self


class TrashTask(_TaskBase):
    """Remove an original file after the encode phase."""

    kind: Literal["trash"] = "trash"

    @model_validator(mode="after")
    def _single_target(self) -> "TrashTask":
        if len(self.source_paths) != 1:
            raise ValueError(
                f"Trash task requires exactly one target path (received {len(self.source_paths)})"
            )
        return self

    @property
    def path(self) -> str:
        return self.source_paths[0]


Task = Annotated[
    Union[ConvertTask, ConcatTask, TrashTask],
    Field(discriminator="kind"),
]

TASK_LIST_ADAPTER: TypeAdapter[List[Task]] = TypeAdapter(List[Task])


def executable(task: Task) -> bool:
    """True for tasks submitted to the process runner."""
    return task.kind in (TaskKind.CONVERT, TaskKind.CONCAT)
