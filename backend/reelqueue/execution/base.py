"""
External collaborator interfaces.

Every collaborator call is a coroutine: it suspends the calling logical
task until it resolves or fails, without blocking other work on the loop.

Design rules:
- Collaborators are stateless from the orchestrator's point of view;
  all context is passed per call
- Failures are raised as exceptions (see errors.py); callers convert them
  into status values
- No timeouts: error handling is failure-driven
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .requests import EncodeRequest
from .results import EncodeResult


class LoopBoundLock:
    """
    asyncio.Lock created inside the loop that uses it.

    Collaborators may be built before any loop runs (module-level app,
    CLI setup). Each new running loop gets a fresh lock.
    """

    def __init__(self):
        self._lock: Optional[asyncio.Lock] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _current(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not loop:
            self._lock = asyncio.Lock()
            self._loop = loop
        return self._lock

    async def __aenter__(self) -> "LoopBoundLock":
        await self._current().acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._lock.release()


class MediaAnalysis(BaseModel):
    """Result of analyzing one source file."""

    model_config = ConfigDict(extra="forbid")

    path: str
    size: int = 0
    has_video: bool = False
    has_audio: bool = False
    duration: float = 0.0


class MediaAnalyzer(ABC):
    """Inspects source media."""

    @abstractmethod
    async def analyze(self, path: str) -> MediaAnalysis:
        """
        Analyze a source file.

        Raises:
            AnalysisError: If the file cannot be inspected
        """
        pass


class ProcessRunner(ABC):
    """
    Runs one encode request to completion.

    Live progress and log lines are published out-of-band on the runner's
    EventChannel, tagged with the task id passed to run().
    """

    @abstractmethod
    async def run(self, request: EncodeRequest, task_id: str) -> EncodeResult:
        """
        Execute a request.

        Must support at least the "main" and "temp_chunk" output labels.

        Raises:
            ProcessExecutionError: If the encode fails
        """
        pass

    @abstractmethod
    async def cancel(self, task_id: str) -> None:
        """
        Stop the encode running for task_id, if any.

        The pending run() call then raises ProcessExecutionError.
        Cancelling an unknown or finished task is a no-op.
        """
        pass


class ChunkSink(ABC):
    """Receives base64 chunks of a file that has no filesystem path."""

    @abstractmethod
    async def put_chunk(self, file_name: str, payload: str, offset: int) -> str:
        """
        Store one chunk.

        Returns:
            Destination path, stable across all chunks of one transfer
        """
        pass


class DeleteService(ABC):
    """Staged physical deletion with opaque tokens."""

    @abstractmethod
    async def request_delete(self, path: str) -> str:
        """
        Stage a deletion.

        Returns:
            Opaque token identifying the staged deletion

        Raises:
            DeleteRequestError: If the file cannot be staged (e.g. already gone)
        """
        pass

    @abstractmethod
    async def confirm_delete(self, token: str) -> None:
        """
        Commit a staged deletion.

        Raises:
            DeleteCommitError: If the token is unknown or deletion fails
        """
        pass

    @abstractmethod
    async def cancel_delete(self, token: str) -> None:
        """Forget a staged deletion. Unknown tokens are ignored."""
        pass
