"""
Encode result models.

A result lists every file the runner produced, keyed by output label.
Results are stored by task id in the orchestrator's results map and are
the only source for resolving concat dependencies.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .requests import MAIN_LABEL, TEMP_CHUNK_LABEL


class OutputArtifact(BaseModel):
    """One produced file."""

    model_config = ConfigDict(extra="forbid")

    label: str
    path: str
    size: int = 0


class EncodeResult(BaseModel):
    """Result of a successful encode."""

    model_config = ConfigDict(extra="forbid")

    outputs: List[OutputArtifact] = Field(default_factory=list)

    def get(self, label: str) -> Optional[OutputArtifact]:
        """Return the artifact with the given label, if any."""
        for artifact in self.outputs:
            if artifact.label == label:
                return artifact
        return None

    @property
    def main(self) -> Optional[OutputArtifact]:
        return self.get(MAIN_LABEL)

    def dependency_path(self) -> Optional[str]:
        """
        Path a downstream concat should consume.

        Prefers the temp_chunk artifact, falls back to main.
        """
        artifact = self.get(TEMP_CHUNK_LABEL) or self.get(MAIN_LABEL)
        if artifact is None or not artifact.path:
            return None
        return artifact.path
