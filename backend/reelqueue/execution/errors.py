"""
Execution-specific errors.

All errors are non-fatal to the application.
They indicate failure for a specific file or task; the caller converts
them into a status value plus a log line.
"""

from typing import Optional


class ExecutionError(Exception):
    """
    Base exception for execution failures.

    All execution errors inherit from this.
    """

    pass


class AnalysisError(ExecutionError):
    """
    Media analysis failed.

    Raised when a source cannot be inspected:
    - File missing or unreadable
    - ffprobe missing or failing
    - Unparseable probe output

    Isolates the single file being analyzed.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to analyze {path}: {reason}")


class ProcessExecutionError(ExecutionError):
    """
    External encoder failed.

    Raised when the process runner cannot complete a request:
    - ffmpeg missing
    - Non-zero exit code
    - Output file missing after a successful exit
    - Cancelled while running

    Fails the task and aborts the remaining queue.
    """

    def __init__(
        self,
        task_id: str,
        reason: str,
        exit_code: Optional[int] = None,
    ):
        self.task_id = task_id
        self.reason = reason
        self.exit_code = exit_code
        message = f"Task {task_id} encode failed: {reason}"
        if exit_code is not None:
            message += f" (exit code: {exit_code})"
        super().__init__(message)


class OutputPathError(ExecutionError):
    """Raised when an output path cannot be resolved from its rules."""

    pass
