"""
AppSettings — process-wide configuration.

Settings are resolved ONCE at startup and passed explicitly to the
components that need them (output path resolver, chunk sink, delete service,
registry log window). Nothing reads the environment after startup.

Environment overrides (all optional):
- REELQUEUE_VIDEOS_DIR      : Base directory for the "videos" destination
- REELQUEUE_DOWNLOADS_DIR   : Base directory for the "downloads" destination
- REELQUEUE_TEMP_ROOT       : Root for intermediate files and imports
- REELQUEUE_LOG_WINDOW      : Number of trailing log lines retained
- REELQUEUE_FFMPEG          : Explicit ffmpeg binary
- REELQUEUE_FFPROBE         : Explicit ffprobe binary
"""

import os
import platform
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


MIB = 1024 * 1024

APP_FOLDER_NAME = "ReelQueue"


def _default_videos_dir() -> str:
    home = Path.home()
    # Windows keeps videos under "Videos", macOS under "Movies"
    if platform.system() == "Windows":
        return str(home / "Videos")
    return str(home / "Movies")


def _default_downloads_dir() -> str:
    return str(Path.home() / "Downloads")


class AppSettings(BaseModel):
    """
    Resolved application settings.

    Directories are base locations; the app folder name is appended
    by the output path resolver (e.g. ~/Movies/ReelQueue).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    videos_dir: str = Field(default_factory=_default_videos_dir)
    downloads_dir: str = Field(default_factory=_default_downloads_dir)
    temp_root: str = Field(default_factory=tempfile.gettempdir)
    app_folder_name: str = APP_FOLDER_NAME

    # Trailing window of log lines kept for the log panel
    log_window_size: int = 100

    # Chunked transfer bounds (bytes)
    min_chunk_bytes: int = 2 * MIB
    max_chunk_bytes: int = 128 * MIB
    chunk_divisor: int = 10

    # Binary overrides (None → search PATH)
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "AppSettings":
        if self.min_chunk_bytes <= 0 or self.max_chunk_bytes < self.min_chunk_bytes:
            raise ValueError(
                f"Invalid chunk bounds: min={self.min_chunk_bytes}, max={self.max_chunk_bytes}"
            )
        if self.chunk_divisor <= 0:
            raise ValueError(f"chunk_divisor must be positive, got {self.chunk_divisor}")
        if self.log_window_size <= 0:
            raise ValueError(f"log_window_size must be positive, got {self.log_window_size}")
        return self

    @property
    def intermediate_dir(self) -> Path:
        """Directory for temp_chunk outputs (eligible for cleanup)."""
        return Path(self.temp_root) / self.app_folder_name / "Intermediate"

    @property
    def imports_dir(self) -> Path:
        """Directory where uploaded blobs are reassembled."""
        return Path(self.temp_root) / self.app_folder_name / "Imports"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppSettings":
        """
        Build settings from REELQUEUE_* environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            AppSettings with overrides applied
        """
        env = os.environ if environ is None else environ
        overrides = {}

        mapping = {
            "REELQUEUE_VIDEOS_DIR": "videos_dir",
            "REELQUEUE_DOWNLOADS_DIR": "downloads_dir",
            "REELQUEUE_TEMP_ROOT": "temp_root",
            "REELQUEUE_LOG_WINDOW": "log_window_size",
            "REELQUEUE_FFMPEG": "ffmpeg_path",
            "REELQUEUE_FFPROBE": "ffprobe_path",
        }
        for env_key, field_name in mapping.items():
            value = env.get(env_key)
            if value:
                overrides[field_name] = value

        return cls(**overrides)
