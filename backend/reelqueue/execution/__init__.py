"""
Execution layer: the encode contract and its external collaborators.

ReelQueue uses ffmpeg as its sole encoder and ffprobe as its analyzer.
Everything else talks to them through the interfaces in base.py.
"""

from .errors import (
    ExecutionError,
    AnalysisError,
    ProcessExecutionError,
    OutputPathError,
)
from .requests import (
    MAIN_LABEL,
    TEMP_CHUNK_LABEL,
    InputMode,
    DestinationRule,
    NamingRule,
    InputSpec,
    OutputSpec,
    EncodeRequest,
)
from .results import OutputArtifact, EncodeResult
from .base import (
    MediaAnalysis,
    MediaAnalyzer,
    ProcessRunner,
    ChunkSink,
    DeleteService,
)
from .progress import EventChannel, ProgressEvent, ProgressParser
from .ffmpeg import FFmpegProcessRunner
from .ffprobe import FFprobeAnalyzer

__all__ = [
    # Errors
    "ExecutionError",
    "AnalysisError",
    "ProcessExecutionError",
    "OutputPathError",
    # Requests
    "MAIN_LABEL",
    "TEMP_CHUNK_LABEL",
    "InputMode",
    "DestinationRule",
    "NamingRule",
    "InputSpec",
    "OutputSpec",
    "EncodeRequest",
    # Results
    "OutputArtifact",
    "EncodeResult",
    # Collaborators
    "MediaAnalysis",
    "MediaAnalyzer",
    "ProcessRunner",
    "ChunkSink",
    "DeleteService",
    # Events
    "EventChannel",
    "ProgressEvent",
    "ProgressParser",
    # Implementations
    "FFmpegProcessRunner",
    "FFprobeAnalyzer",
]
