"""
Local ChunkSink: reassembles base64 chunks under the imports directory.

- offset 0 truncates (a new transfer of the same name starts over)
- any other offset appends
- a "data:<mime>;base64," prefix is stripped before decoding
"""

import base64
import binascii
import logging
from pathlib import Path, PurePath

from ..execution.base import ChunkSink, LoopBoundLock
from .errors import TransferError

logger = logging.getLogger(__name__)


def strip_data_url(payload: str) -> str:
    """Drop everything up to the first comma (data URL header), if present."""
    _, sep, rest = payload.partition(",")
    return rest if sep else payload


class LocalChunkSink(ChunkSink):
    """Writes chunks to <imports_dir>/<file name>."""

    def __init__(self, imports_dir: Path):
        self.imports_dir = Path(imports_dir)
        self._lock = LoopBoundLock()

    def destination_for(self, file_name: str) -> Path:
        """
        Destination path for a file name.

        Directory components are discarded so a name cannot escape the
        imports directory.
        """
        name = PurePath(file_name.replace("\\", "/")).name
        if not name or name in (".", ".."):
            raise TransferError(file_name, "Invalid file name")
        return self.imports_dir / name

    async def put_chunk(self, file_name: str, payload: str, offset: int) -> str:
        destination = self.destination_for(file_name)

        try:
            data = base64.b64decode(strip_data_url(payload), validate=True)
        except (binascii.Error, ValueError) as e:
            raise TransferError(file_name, f"Invalid base64 payload: {e}", offset) from e

        async with self._lock:
            try:
                self.imports_dir.mkdir(parents=True, exist_ok=True)
                mode = "wb" if offset == 0 else "ab"
                with open(destination, mode) as f:
                    f.write(data)
            except OSError as e:
                raise TransferError(file_name, str(e), offset) from e

        logger.debug(f"[TRANSFER] Wrote {len(data)} bytes at offset {offset} to {destination}")
        return str(destination)
