"""
In-memory collaborators for tests.

None of these touch ffmpeg, ffprobe or the OS trash.
"""

import asyncio
import base64
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from reelqueue.deletion.errors import DeleteCommitError, DeleteRequestError
from reelqueue.execution.base import (
    ChunkSink,
    DeleteService,
    MediaAnalysis,
    MediaAnalyzer,
    ProcessRunner,
)
from reelqueue.execution.errors import AnalysisError, ProcessExecutionError
from reelqueue.execution.progress import EventChannel, ProgressEvent
from reelqueue.execution.requests import EncodeRequest
from reelqueue.execution.results import EncodeResult, OutputArtifact
from reelqueue.jobs.models import MediaFile, TaskStatus
from reelqueue.transfer.errors import TransferError


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeAnalyzer(MediaAnalyzer):
    """
    Returns canned analyses by path.

    Unknown paths and paths in `broken` raise AnalysisError. `delays`
    makes individual analyses finish later than others.
    """

    def __init__(
        self,
        durations: Optional[Dict[str, float]] = None,
        sizes: Optional[Dict[str, int]] = None,
        broken: Iterable[str] = (),
        delays: Optional[Dict[str, float]] = None,
        default_duration: Optional[float] = None,
    ):
        self.durations = dict(durations or {})
        self.sizes = dict(sizes or {})
        self.broken = set(broken)
        self.delays = dict(delays or {})
        self.default_duration = default_duration
        self.calls: List[str] = []

    async def analyze(self, path: str) -> MediaAnalysis:
        self.calls.append(path)
        delay = self.delays.get(path)
        if delay:
            await asyncio.sleep(delay)

        if path in self.broken:
            raise AnalysisError(path, "Unreadable media")

        duration = self.durations.get(path, self.default_duration)
        if duration is None:
            raise AnalysisError(path, "File does not exist")

        return MediaAnalysis(
            path=path,
            size=self.sizes.get(path, 1000),
            has_video=True,
            has_audio=True,
            duration=duration,
        )


class FakeRunner(ProcessRunner):
    """
    Records every request and returns one artifact per output label.

    Args:
        channel: Channel to publish progress and log lines on
        fail_on: Call indexes (0-based) that raise ProcessExecutionError
        progress_steps: (time_sec, size) samples published during each run
        output_size: Size reported for every artifact
        on_run: Awaited in the middle of each run (e.g. to cancel)
    """

    def __init__(
        self,
        channel: Optional[EventChannel] = None,
        fail_on: Iterable[int] = (),
        progress_steps: Iterable[Tuple[float, int]] = (),
        output_size: int = 400,
        on_run: Optional[Callable[[str], Awaitable[None]]] = None,
    ):
        self.channel = channel or EventChannel()
        self.fail_on = set(fail_on)
        self.progress_steps = list(progress_steps)
        self.output_size = output_size
        self.on_run = on_run
        self.calls: List[Tuple[EncodeRequest, str]] = []
        self.cancelled: List[str] = []

    @property
    def task_ids(self) -> List[str]:
        return [task_id for _, task_id in self.calls]

    async def run(self, request: EncodeRequest, task_id: str) -> EncodeResult:
        index = len(self.calls)
        self.calls.append((request, task_id))

        for time_sec, size in self.progress_steps:
            self.channel.publish_progress(ProgressEvent(task_id=task_id, time_sec=time_sec, size=size))
        self.channel.publish_log(f"frame=1 task={task_id}")

        if self.on_run is not None:
            await self.on_run(task_id)

        if task_id in self.cancelled:
            raise ProcessExecutionError(task_id, "Cancelled by user")
        if index in self.fail_on:
            raise ProcessExecutionError(task_id, "FFmpeg exited with an error", exit_code=1)

        return EncodeResult(
            outputs=[
                OutputArtifact(
                    label=spec.label,
                    path=f"/out/{task_id}/{spec.label}.{spec.extension}",
                    size=self.output_size,
                )
                for spec in request.outputs
            ]
        )

    async def cancel(self, task_id: str) -> None:
        self.cancelled.append(task_id)


class FakeDeleteService(DeleteService):
    """
    Token map without any disk access.

    Paths in `missing` cannot be staged; paths in `commit_failures`
    fail on confirm. Paths in `crashes` and `commit_crashes` raise the
    mapped exception from request_delete and confirm_delete respectively.
    """

    def __init__(
        self,
        missing: Iterable[str] = (),
        commit_failures: Iterable[str] = (),
        crashes: Optional[Dict[str, Exception]] = None,
        commit_crashes: Optional[Dict[str, Exception]] = None,
    ):
        self.missing = set(missing)
        self.commit_failures = set(commit_failures)
        self.crashes = dict(crashes or {})
        self.commit_crashes = dict(commit_crashes or {})
        self.requested: List[str] = []
        self.confirmed: List[str] = []
        self.cancelled: List[str] = []
        self._tokens: Dict[str, str] = {}

    @property
    def call_count(self) -> int:
        return len(self.requested) + len(self.confirmed) + len(self.cancelled)

    async def request_delete(self, path: str) -> str:
        self.requested.append(path)
        if path in self.crashes:
            raise self.crashes[path]
        if path in self.missing:
            raise DeleteRequestError(path, "File not found")
        token = f"token-{len(self._tokens) + 1}"
        self._tokens[token] = path
        return token

    async def confirm_delete(self, token: str) -> None:
        path = self._tokens.pop(token, None)
        if path is None:
            raise DeleteCommitError("", f"Invalid delete token: {token}")
        if path in self.commit_crashes:
            raise self.commit_crashes[path]
        if path in self.commit_failures:
            raise DeleteCommitError(path, "Failed to move to trash")
        self.confirmed.append(path)

    async def cancel_delete(self, token: str) -> None:
        path = self._tokens.pop(token, None)
        if path is not None:
            self.cancelled.append(path)


class MemorySink(ChunkSink):
    """Reassembles chunks in memory, keyed by file name."""

    def __init__(self, fail_names: Iterable[str] = (), crash_names: Iterable[str] = ()):
        self.fail_names = set(fail_names)
        self.crash_names = set(crash_names)
        self.files: Dict[str, bytearray] = {}
        self.calls: List[Tuple[str, int]] = []

    async def put_chunk(self, file_name: str, payload: str, offset: int) -> str:
        self.calls.append((file_name, offset))
        if file_name in self.fail_names:
            raise TransferError(file_name, "Disk full", offset)
        if file_name in self.crash_names:
            raise RuntimeError("sink went away")

        data = base64.b64decode(payload)
        if offset == 0:
            self.files[file_name] = bytearray()
        self.files[file_name].extend(data)
        return f"/imports/{file_name}"


def make_file(path: str, duration: float = 100.0, size: int = 1000, **kwargs) -> MediaFile:
    """A ready (waiting) source file."""
    return MediaFile(path=path, duration=duration, size=size, status=TaskStatus.WAITING, **kwargs)
