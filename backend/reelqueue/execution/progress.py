"""
Encoder progress signals.

ffmpeg is started with `-progress pipe:1 -nostats`, which writes blocks
of key=value lines to stdout:

    out_time_us=1234567
    total_size=524288
    progress=continue

We parse:
- out_time_us → position in the OUTPUT timeline (seconds)
- total_size  → bytes written so far
- progress=continue|end → one complete block, emit an event

Events are published on an EventChannel tagged with the task id the runner
was started for. Subscribers decide whether the id is still current.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """One progress sample for a running task."""

    task_id: str
    time_sec: float = 0.0  # Output position in seconds
    size: int = 0  # Bytes written so far


ProgressCallback = Callable[[ProgressEvent], None]
LogCallback = Callable[[str], None]


class EventChannel:
    """
    Out-of-band push channel from a runner to its observers.

    Subscriber failures are logged and never propagate into the runner.
    """

    def __init__(self):
        self._progress_subscribers: List[ProgressCallback] = []
        self._log_subscribers: List[LogCallback] = []

    def subscribe_progress(self, callback: ProgressCallback) -> None:
        self._progress_subscribers.append(callback)

    def subscribe_log(self, callback: LogCallback) -> None:
        self._log_subscribers.append(callback)

    def unsubscribe_progress(self, callback: ProgressCallback) -> None:
        if callback in self._progress_subscribers:
            self._progress_subscribers.remove(callback)

    def unsubscribe_log(self, callback: LogCallback) -> None:
        if callback in self._log_subscribers:
            self._log_subscribers.remove(callback)

    def publish_progress(self, event: ProgressEvent) -> None:
        for callback in list(self._progress_subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"[PROGRESS] Subscriber failed for task {event.task_id}: {e}")

    def publish_log(self, line: str) -> None:
        for callback in list(self._log_subscribers):
            try:
                callback(line)
            except Exception as e:
                logger.warning(f"Log subscriber failed: {e}")


class ProgressParser:
    """
    Parse ffmpeg `-progress` key=value output.

    Usage:
        parser = ProgressParser(task_id="abc")
        for line in stdout_lines:
            event = parser.parse_line(line)
            if event:
                channel.publish_progress(event)
    """

    def __init__(self, task_id: str):
        self.task_id = task_id
        self._time_sec = 0.0
        self._size = 0

    def parse_line(self, line: str) -> Optional[ProgressEvent]:
        """
        Parse a single line.

        Returns:
            ProgressEvent when the line closes a progress block, None otherwise
        """
        key, sep, value = line.partition("=")
        if not sep:
            return None

        key = key.strip()
        value = value.strip()

        if key == "total_size":
            try:
                self._size = int(value)
            except ValueError:
                pass  # "N/A" before the first packet is written
        elif key == "out_time_us":
            try:
                self._time_sec = float(value) / 1_000_000.0
            except ValueError:
                pass
        elif key == "progress" and value in ("continue", "end"):
            return ProgressEvent(
                task_id=self.task_id,
                time_sec=self._time_sec,
                size=self._size,
            )

        return None


def split_log_chunk(buffer: str) -> Tuple[List[str], str]:
    """
    Split encoder stderr on CR or LF.

    ffmpeg rewrites its status line with bare CR, so both count as
    line breaks. Blank lines are dropped.

    Returns:
        (complete non-blank lines, unterminated remainder)
    """
    lines: List[str] = []
    current = []
    for char in buffer:
        if char in "\r\n":
            line = "".join(current)
            if line.strip():
                lines.append(line)
            current = []
        else:
            current.append(char)
    return lines, "".join(current)
