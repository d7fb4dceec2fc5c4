"""
Chunked transfer of path-less inputs (e.g. browser-supplied blobs).

Chunk sizing:
    chunk_size = clamp(ceil(file_size / 10), 2 MiB, 128 MiB)
Non-decreasing in file size, always within the bounds.

Transfer loop:
- offsets 0, chunk, 2·chunk, ... while offset < file_size
- each byte range is base64-encoded and sent as (file_name, payload, offset)
- after each chunk, percent = min(100, round(end / file_size × 100))
- the destination reported by the last chunk is the result

INVARIANT: a failing chunk aborts only its own file's transfer.
"""

import asyncio
import base64
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from ..execution.base import ChunkSink
from ..settings import MIB
from .errors import TransferError

logger = logging.getLogger(__name__)


MIN_CHUNK_BYTES = 2 * MIB
MAX_CHUNK_BYTES = 128 * MIB
CHUNK_DIVISOR = 10


ProgressCallback = Callable[[int], None]


def chunk_size_for(
    file_size: int,
    min_bytes: int = MIN_CHUNK_BYTES,
    max_bytes: int = MAX_CHUNK_BYTES,
    divisor: int = CHUNK_DIVISOR,
) -> int:
    """
    Chunk size for a file of `file_size` bytes.

    Example: 500 MiB → 50 MiB; 1 MiB → 2 MiB; 10 GiB → 128 MiB.
    """
    if file_size < 0:
        raise ValueError(f"file_size must be non-negative, got {file_size}")
    return min(max(math.ceil(file_size / divisor), min_bytes), max_bytes)


def iter_chunk_ranges(file_size: int, chunk_size: Optional[int] = None) -> Iterator[Tuple[int, int]]:
    """Yield [start, end) byte ranges covering exactly file_size bytes."""
    size = chunk_size or chunk_size_for(file_size)
    offset = 0
    while offset < file_size:
        end = min(offset + size, file_size)
        yield offset, end
        offset += size


def percent_done(end: int, file_size: int) -> int:
    """Rounded completion percent (half rounds up), capped at 100."""
    if file_size <= 0:
        return 100
    return min(100, math.floor(end / file_size * 100 + 0.5))


class BlobSource(ABC):
    """A named byte source without a filesystem path."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def size(self) -> int:
        pass

    @abstractmethod
    async def read(self, start: int, end: int) -> bytes:
        """Return bytes [start, end)."""
        pass


class BytesBlob(BlobSource):
    """In-memory blob."""

    def __init__(self, name: str, data: bytes):
        self._name = name
        self._data = bytes(data)

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return len(self._data)

    async def read(self, start: int, end: int) -> bytes:
        return self._data[start:end]


@dataclass
class TransferOutcome:
    """Result of one transfer in a batch: a destination or an error."""

    name: str
    destination: Optional[str] = None
    error: Optional[TransferError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChunkedTransferManager:
    """Streams blobs to a ChunkSink in bounded base64 chunks."""

    def __init__(
        self,
        sink: ChunkSink,
        min_chunk_bytes: int = MIN_CHUNK_BYTES,
        max_chunk_bytes: int = MAX_CHUNK_BYTES,
        chunk_divisor: int = CHUNK_DIVISOR,
    ):
        self._sink = sink
        self._min = min_chunk_bytes
        self._max = max_chunk_bytes
        self._divisor = chunk_divisor

    def chunk_size(self, file_size: int) -> int:
        return chunk_size_for(file_size, self._min, self._max, self._divisor)

    async def transfer(
        self,
        blob: BlobSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Transfer one blob.

        Returns:
            Destination path reported by the final chunk

        Raises:
            TransferError: If any chunk fails
        """
        size = blob.size
        ranges = list(iter_chunk_ranges(size, self.chunk_size(size)))
        if not ranges:
            # Empty file: one empty chunk creates the destination
            ranges = [(0, 0)]

        destination: Optional[str] = None
        for start, end in ranges:
            try:
                data = await blob.read(start, end)
                payload = base64.b64encode(data).decode("ascii")
                reported = await self._sink.put_chunk(blob.name, payload, start)
            except TransferError:
                raise
            except Exception as e:
                raise TransferError(blob.name, str(e) or type(e).__name__, start) from e

            if destination is not None and reported != destination:
                raise TransferError(
                    blob.name, f"Destination changed mid-transfer ({destination} → {reported})", start
                )
            destination = reported

            if on_progress is not None:
                on_progress(percent_done(end, size))

        logger.info(f"[TRANSFER] {blob.name}: {size} bytes in {len(ranges)} chunk(s) → {destination}")
        return destination or ""

    async def transfer_many(
        self,
        blobs: Sequence[BlobSource],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[TransferOutcome]:
        """
        Transfer blobs concurrently.

        Args:
            blobs: Independent blobs
            on_progress: Called with (blob index, percent)

        Returns:
            One TransferOutcome per blob, in input order
        """

        async def _one(index: int, blob: BlobSource) -> TransferOutcome:
            callback = None
            if on_progress is not None:
                callback = lambda percent: on_progress(index, percent)
            try:
                destination = await self.transfer(blob, callback)
            except TransferError as e:
                logger.warning(f"[TRANSFER] {e}")
                return TransferOutcome(name=blob.name, error=e)
            except Exception as e:
                logger.exception(f"[TRANSFER] {blob.name}: unexpected failure")
                return TransferOutcome(name=blob.name, error=TransferError(blob.name, str(e) or type(e).__name__))
            return TransferOutcome(name=blob.name, destination=destination)

        return list(await asyncio.gather(*(_one(i, b) for i, b in enumerate(blobs))))
