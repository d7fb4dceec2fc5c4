"""
FFmpeg process runner.

Design rules:
- One subprocess per request
- Output paths are resolved up front (output_paths.py), never by ffmpeg
- stdout carries `-progress pipe:1` blocks → ProgressEvent on the channel
- stderr is split on CR/LF and forwarded line by line as log output
- Non-zero exit code = ProcessExecutionError
- Missing output file after exit 0 = ProcessExecutionError
- SIGTERM → SIGKILL escalation for cancellation

Concat inputs are written to a list file and read with the concat
demuxer (`-f concat -safe 0 -i <list>`).
"""

import asyncio
import codecs
import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from ..settings import AppSettings
from .base import ProcessRunner
from .errors import OutputPathError, ProcessExecutionError
from .output_paths import resolve_output_path
from .progress import EventChannel, ProgressParser, split_log_chunk
from .requests import EncodeRequest, InputMode
from .results import EncodeResult, OutputArtifact

logger = logging.getLogger(__name__)


# Seconds to wait after SIGTERM before escalating to SIGKILL
TERMINATE_GRACE_SECONDS = 5.0

PROGRESS_ARGS = ["-progress", "pipe:1", "-nostats"]


def find_binary(name: str, explicit: Optional[str] = None) -> Optional[str]:
    """Locate an ffmpeg-family binary (explicit override, PATH, common dirs)."""
    if explicit:
        return explicit if os.path.isfile(explicit) else None

    found = shutil.which(name)
    if found:
        return found

    common_paths = [
        f"/usr/local/bin/{name}",
        f"/usr/bin/{name}",
        f"/opt/homebrew/bin/{name}",
    ]
    for path in common_paths:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path

    return None


def write_concat_list(paths: List[str], directory: Path) -> Path:
    """
    Write a concat demuxer list file.

    Single quotes in paths are escaped the way the demuxer expects.
    """
    directory.mkdir(parents=True, exist_ok=True)
    list_path = directory / f"concat_{uuid.uuid4().hex}.txt"
    lines = []
    for path in paths:
        escaped = str(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


def build_ffmpeg_command(
    ffmpeg_path: str,
    request: EncodeRequest,
    output_paths: Dict[str, Path],
    concat_list: Optional[Path] = None,
) -> List[str]:
    """
    Build the ffmpeg argv for a request.

    Layout: ffmpeg -y <progress args> <inputs> <global options>
            (<encoder options> <output path>)...

    Args:
        ffmpeg_path: ffmpeg binary
        request: The request to execute
        output_paths: Resolved path per output label
        concat_list: List file for concat-mode requests

    Returns:
        Command line arguments
    """
    cmd = [ffmpeg_path, "-y"] + PROGRESS_ARGS

    if request.input.mode == InputMode.CONCAT:
        if concat_list is None:
            raise ValueError("Concat request requires a list file")
        cmd.extend(["-f", "concat", "-safe", "0", "-i", str(concat_list)])
    else:
        for path in request.input.paths:
            cmd.extend(["-i", path])

    cmd.extend(request.global_options)

    for spec in request.outputs:
        cmd.extend(spec.encoder_options)
        cmd.append(str(output_paths[spec.label]))

    return cmd


class FFmpegProcessRunner(ProcessRunner):
    """
    ProcessRunner backed by an ffmpeg subprocess.

    Progress and log lines are published on `channel`, tagged with the
    task id given to run().
    """

    def __init__(
        self,
        settings: AppSettings,
        channel: Optional[EventChannel] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._settings = settings
        self.channel = channel or EventChannel()
        self._id_factory = id_factory
        self._active_processes: Dict[str, asyncio.subprocess.Process] = {}
        self._cancelled_tasks: Set[str] = set()

    def resolve_outputs(self, request: EncodeRequest) -> Dict[str, Path]:
        """
        Resolve every output path of a request.

        Raises:
            OutputPathError: If any path cannot be resolved
        """
        source = request.input.paths[0] if request.input.paths else None
        resolved: Dict[str, Path] = {}
        for spec in request.outputs:
            if spec.label in resolved:
                raise OutputPathError(f"Duplicate output label: {spec.label}")
            resolved[spec.label] = resolve_output_path(
                source, spec, self._settings, self._id_factory
            )
        return resolved

    async def run(self, request: EncodeRequest, task_id: str) -> EncodeResult:
        ffmpeg_path = find_binary("ffmpeg", self._settings.ffmpeg_path)
        if not ffmpeg_path:
            raise ProcessExecutionError(task_id, "FFmpeg is not installed or not in PATH")

        if not request.input.paths:
            raise ProcessExecutionError(task_id, "Request has no input paths")
        if not request.outputs:
            raise ProcessExecutionError(task_id, "Request has no outputs")

        try:
            return await self._run(request, task_id, ffmpeg_path)
        finally:
            self._cancelled_tasks.discard(task_id)

    async def _run(self, request: EncodeRequest, task_id: str, ffmpeg_path: str) -> EncodeResult:
        try:
            output_paths = self.resolve_outputs(request)
        except OutputPathError as e:
            raise ProcessExecutionError(task_id, str(e)) from e

        for path in output_paths.values():
            path.parent.mkdir(parents=True, exist_ok=True)

        concat_list: Optional[Path] = None
        if request.input.mode == InputMode.CONCAT:
            concat_list = write_concat_list(
                request.input.paths,
                Path(tempfile.gettempdir()) / self._settings.app_folder_name,
            )

        cmd = build_ffmpeg_command(ffmpeg_path, request, output_paths, concat_list)
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

        try:
            exit_code = await self._execute(cmd, task_id)
        finally:
            if concat_list is not None:
                concat_list.unlink(missing_ok=True)

        if task_id in self._cancelled_tasks:
            raise ProcessExecutionError(task_id, "Cancelled by user", exit_code)

        if exit_code != 0:
            logger.error(f"[FFmpeg] Task {task_id} exited with code {exit_code}")
            raise ProcessExecutionError(task_id, "FFmpeg exited with an error", exit_code)

        artifacts = []
        for label, path in output_paths.items():
            if not path.is_file():
                raise ProcessExecutionError(task_id, f"Output file was not created: {path}")
            artifacts.append(
                OutputArtifact(label=label, path=str(path), size=path.stat().st_size)
            )

        logger.info(f"[FFmpeg] Completed task {task_id}: {[a.path for a in artifacts]}")
        return EncodeResult(outputs=artifacts)

    async def cancel(self, task_id: str) -> None:
        # Marked even without a process: run() may still be spawning it
        self._cancelled_tasks.add(task_id)
        process = self._active_processes.get(task_id)
        if process is None:
            logger.info(f"[FFmpeg] Task {task_id} has no process yet, marked cancelled")
            return
        await self._terminate(process)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        logger.info(f"[FFmpeg] Sending SIGTERM to PID {process.pid}")
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(f"[FFmpeg] PID {process.pid} did not terminate, sending SIGKILL")
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass  # Already exited

    async def _execute(self, cmd: List[str], task_id: str) -> int:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessExecutionError(task_id, f"Failed to start FFmpeg: {e}") from e

        self._active_processes[task_id] = process
        logger.info(f"[FFmpeg] Started PID {process.pid} for task {task_id}")

        try:
            if task_id in self._cancelled_tasks:
                await self._terminate(process)
            await asyncio.gather(
                self._pump_progress(process.stdout, task_id),
                self._pump_log(process.stderr),
            )
            return await process.wait()
        finally:
            self._active_processes.pop(task_id, None)

    async def _pump_progress(self, stream: Optional[asyncio.StreamReader], task_id: str) -> None:
        if stream is None:
            return
        parser = ProgressParser(task_id)
        while True:
            raw = await stream.readline()
            if not raw:
                break
            event = parser.parse_line(raw.decode("utf-8", errors="replace"))
            if event is not None:
                self.channel.publish_progress(event)

    async def _pump_log(self, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        # Multi-byte characters may straddle two reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            raw = await stream.read(4096)
            if not raw:
                break
            lines, pending = split_log_chunk(pending + decoder.decode(raw))
            for line in lines:
                self.channel.publish_log(line)
        pending += decoder.decode(b"", final=True)
        if pending.strip():
            self.channel.publish_log(pending)

