"""
Encode request models.

The request is the COMPLETE contract handed to a process runner:
- Which inputs to read (single file or concat list)
- Global options placed before the inputs (e.g. -filter_complex)
- One OutputSpec per produced file, each with its own encoder options

Output placement is table-driven. A runner never invents paths:
it combines a DestinationRule and a NamingRule through
output_paths.resolve_output_path().
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Output labels understood by every runner
MAIN_LABEL = "main"
TEMP_CHUNK_LABEL = "temp_chunk"


class InputMode(str, Enum):
    """How the runner reads the input paths."""

    SINGLE = "single"  # One -i per path
    CONCAT = "concat"  # Paths are joined with the concat demuxer


class DestinationRule(str, Enum):
    """Where an output file is placed."""

    SAME = "same"  # Next to the source file
    VIDEOS = "videos"  # User video library / app folder
    DOWNLOADS = "downloads"  # User downloads / app folder
    TEMP = "temp"  # Intermediate storage (cleanup candidate)
    CUSTOM = "custom"  # Absolute or relative directory in custom_dir


class NamingRule(str, Enum):
    """How an output file is named."""

    AUTO = "auto"  # <source stem><value>
    FIXED = "fixed"  # <value>
    UUID = "uuid"  # Generated identifier


class InputSpec(BaseModel):
    """Inputs for one encode."""

    model_config = ConfigDict(extra="forbid")

    mode: InputMode = InputMode.SINGLE
    paths: List[str] = Field(default_factory=list)


class OutputSpec(BaseModel):
    """
    One output of an encode.

    encoder_options are placed verbatim before the output path.
    """

    model_config = ConfigDict(extra="forbid")

    label: str
    destination: DestinationRule = DestinationRule.SAME
    custom_dir: Optional[str] = None
    naming: NamingRule = NamingRule.AUTO
    name_value: str = ""
    extension: str = "mp4"
    encoder_options: List[str] = Field(default_factory=list)


class EncodeRequest(BaseModel):
    """Complete specification of one external encoder invocation."""

    model_config = ConfigDict(extra="forbid")

    input: InputSpec = Field(default_factory=InputSpec)
    global_options: List[str] = Field(default_factory=list)
    outputs: List[OutputSpec] = Field(default_factory=list)

    def output(self, label: str) -> Optional[OutputSpec]:
        """Return the output with the given label, if any."""
        for spec in self.outputs:
            if spec.label == label:
                return spec
        return None

    def with_input_paths(self, paths: List[str]) -> "EncodeRequest":
        """
        Return a copy with the input paths replaced.

        Used by the orchestrator to fill a concat request with resolved
        dependency outputs. The compiled request is never mutated.
        """
        return self.model_copy(
            update={"input": self.input.model_copy(update={"paths": list(paths)})},
            deep=True,
        )
