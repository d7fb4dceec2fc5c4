"""
Media analysis using ffprobe.

Analysis is read-only and non-destructive. It reports the facts the
recipes and metrics need: size, duration, and whether the file carries
video and audio streams.

Failures raise AnalysisError for the single file being analyzed.
Missing values are reported as zero / False, never guessed.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..settings import AppSettings
from .base import MediaAnalysis, MediaAnalyzer
from .errors import AnalysisError
from .ffmpeg import find_binary

logger = logging.getLogger(__name__)


def probe_command(ffprobe_path: str, path: str) -> List[str]:
    """ffprobe argv (JSON output with format and stream sections)."""
    return [
        ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        path,
    ]


def parse_probe_output(path: str, size: int, probe_data: Dict[str, Any]) -> MediaAnalysis:
    """
    Convert parsed ffprobe JSON into a MediaAnalysis.

    Duration comes from the format section, falling back to the longest
    stream duration when the container does not report one.
    """
    streams = probe_data.get("streams") or []
    fmt = probe_data.get("format") or {}

    has_video = any(
        s.get("codec_type") == "video"
        and not (s.get("disposition") or {}).get("attached_pic")
        for s in streams
    )
    has_audio = any(s.get("codec_type") == "audio" for s in streams)

    duration = _to_float(fmt.get("duration"))
    if not duration:
        stream_durations = [_to_float(s.get("duration")) for s in streams]
        duration = max(stream_durations, default=0.0)

    return MediaAnalysis(
        path=path,
        size=size,
        has_video=has_video,
        has_audio=has_audio,
        duration=duration,
    )


def _to_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return 0.0


class FFprobeAnalyzer(MediaAnalyzer):
    """MediaAnalyzer backed by an ffprobe subprocess."""

    def __init__(self, settings: AppSettings):
        self._settings = settings
        self._ffprobe_path: Optional[str] = None

    def _find_ffprobe(self) -> Optional[str]:
        if self._ffprobe_path is None:
            self._ffprobe_path = find_binary("ffprobe", self._settings.ffprobe_path)
        return self._ffprobe_path

    async def analyze(self, path: str) -> MediaAnalysis:
        file_path = Path(path)
        if not file_path.exists():
            raise AnalysisError(path, "File does not exist")
        if not file_path.is_file():
            raise AnalysisError(path, "Path is not a file")

        size = file_path.stat().st_size

        ffprobe_path = self._find_ffprobe()
        if not ffprobe_path:
            raise AnalysisError(path, "ffprobe is not installed or not in PATH")

        try:
            process = await asyncio.create_subprocess_exec(
                *probe_command(ffprobe_path, path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            raise AnalysisError(path, f"Failed to start ffprobe: {e}") from e

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise AnalysisError(
                path,
                f"ffprobe failed with exit code {process.returncode}"
                + (f": {detail}" if detail else ""),
            )

        try:
            probe_data = json.loads(stdout.decode("utf-8", errors="replace") or "{}")
        except json.JSONDecodeError as e:
            raise AnalysisError(path, f"Failed to parse ffprobe output: {e}") from e

        analysis = parse_probe_output(path, size, probe_data)
        logger.debug(
            f"[ANALYZE] {path}: {analysis.duration:.2f}s, "
            f"video={analysis.has_video}, audio={analysis.has_audio}"
        )
        return analysis
