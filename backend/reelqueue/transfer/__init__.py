"""Chunked transfer of inputs that have no filesystem path."""

from .errors import TransferError
from .chunking import (
    MIN_CHUNK_BYTES,
    MAX_CHUNK_BYTES,
    BlobSource,
    BytesBlob,
    ChunkedTransferManager,
    TransferOutcome,
    chunk_size_for,
    iter_chunk_ranges,
    percent_done,
)
from .sink import LocalChunkSink

__all__ = [
    "TransferError",
    "MIN_CHUNK_BYTES",
    "MAX_CHUNK_BYTES",
    "BlobSource",
    "BytesBlob",
    "ChunkedTransferManager",
    "TransferOutcome",
    "chunk_size_for",
    "iter_chunk_ranges",
    "percent_done",
    "LocalChunkSink",
]
