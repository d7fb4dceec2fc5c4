"""
Encoder option presets.

These are the ONLY encoder option sets the recipes emit. Option tuning
beyond this table is out of scope.

# ============================================================================
# CODEC PRESETS
# ============================================================================
hevc → libx265, crf 23, tag hvc1, preset medium
av1  → libsvtav1 (SVT-AV1), crf 32, preset 8
"""

from enum import Enum
from typing import Dict, List


class CodecPreset(str, Enum):
    """Output video codec choice for plain conversion."""

    HEVC = "hevc"
    AV1 = "av1"


class AudioMode(str, Enum):
    """What happens to the source audio track."""

    COPY = "copy"  # Stream-copy
    NONE = "none"  # Dropped


CODEC_OPTIONS: Dict[CodecPreset, List[str]] = {
    CodecPreset.HEVC: ["-c:v", "libx265", "-crf", "23", "-tag:v", "hvc1", "-preset", "medium"],
    CodecPreset.AV1: ["-c:v", "libsvtav1", "-crf", "32", "-preset", "8"],
}

AUDIO_OPTIONS: Dict[AudioMode, List[str]] = {
    AudioMode.COPY: ["-c:a", "copy"],
    AudioMode.NONE: ["-an"],
}

# Source metadata is always carried over
METADATA_OPTIONS: List[str] = ["-map_metadata", "0"]

# Global and per-video-stream metadata, used by the filter-graph outputs
STREAM_METADATA_OPTIONS: List[str] = ["-map_metadata", "0", "-map_metadata:s:v", "0:s:v"]

# Stream-copy merge, no re-encode
CONCAT_COPY_OPTIONS: List[str] = ["-c", "copy", "-an"]


def codec_options(codec: CodecPreset) -> List[str]:
    """Encoder options for a codec preset (copy)."""
    return list(CODEC_OPTIONS[CodecPreset(codec)])


def audio_options(audio: AudioMode) -> List[str]:
    """Encoder options for an audio mode (copy)."""
    return list(AUDIO_OPTIONS[AudioMode(audio)])
