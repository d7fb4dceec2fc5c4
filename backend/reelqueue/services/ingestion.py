"""
IngestionService — the single entry point for adding source files.

Two import paths:
- import_paths(): files that already exist on disk
- import_blobs(): path-less byte sources, reassembled through the
  chunked transfer manager first (flagged temp: eligible for deletion)

Every file is analyzed independently (asyncio.gather). Results are
applied BY ID, so analyses finishing in any order, or finishing after
the file was removed from the list, never touch an unrelated record.

Failures are isolated per file: AnalysisError / TransferError mark that
file ERROR with a log line. Nothing propagates.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..execution.base import MediaAnalyzer
from ..execution.errors import AnalysisError
from ..jobs.errors import TaskNotFoundError
from ..jobs.models import MediaFile, RunPhase, TaskStatus
from ..jobs.registry import JobRegistry
from ..transfer.chunking import BlobSource, ChunkedTransferManager

logger = logging.getLogger(__name__)


class IngestionError(Exception):
    """Raised when an import request is invalid as a whole."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IngestionService:
    """Imports source files into the registry and analyzes them."""

    def __init__(
        self,
        registry: JobRegistry,
        analyzer: MediaAnalyzer,
        transfer_manager: Optional[ChunkedTransferManager] = None,
    ):
        self.registry = registry
        self.analyzer = analyzer
        self.transfer_manager = transfer_manager

    async def import_paths(self, paths: Sequence[str], is_temp: bool = False) -> List[MediaFile]:
        """
        Add on-disk files to the source list and analyze them.

        Args:
            paths: File paths, in display order
            is_temp: Mark the files as transient (e.g. reassembled uploads)

        Returns:
            Snapshots of the imported records after analysis

        Raises:
            IngestionError: If no paths were given
        """
        cleaned = [p.strip() for p in paths if p and p.strip()]
        if not cleaned:
            raise IngestionError("At least one file path is required")

        files = [
            MediaFile(path=str(Path(p).expanduser()), status=TaskStatus.WAITING, is_temp=is_temp)
            for p in cleaned
        ]
        self.registry.add_files(files)
        logger.info(f"Imported {len(files)} file(s) from paths")

        await self._with_import_phase(self._analyze_all([f.id for f in files]))
        return self._snapshots([f.id for f in files])

    async def import_blobs(self, blobs: Sequence[BlobSource]) -> List[MediaFile]:
        """
        Transfer path-less sources, then analyze the reassembled files.

        Raises:
            IngestionError: If no blobs were given or no transfer manager is configured
        """
        if not blobs:
            raise IngestionError("At least one file is required")
        if self.transfer_manager is None:
            raise IngestionError("Blob import is not available: no transfer manager configured")

        files = [
            MediaFile(
                path=blob.name,
                size=blob.size,
                status=TaskStatus.UPLOADING,
                is_temp=True,
            )
            for blob in blobs
        ]
        self.registry.add_files(files)
        ids = [f.id for f in files]

        async def _run() -> None:
            def on_progress(index: int, percent: int) -> None:
                self._safe_update(ids[index], progress=float(percent))

            outcomes = await self.transfer_manager.transfer_many(blobs, on_progress)

            ready: List[str] = []
            for file_id, outcome in zip(ids, outcomes):
                if outcome.ok:
                    if self._safe_update(
                        file_id,
                        path=outcome.destination,
                        status=TaskStatus.WAITING,
                        progress=0.0,
                    ):
                        ready.append(file_id)
                else:
                    self._fail(file_id, str(outcome.error))

            await self._analyze_all(ready)

        await self._with_import_phase(_run())
        return self._snapshots(ids)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _with_import_phase(self, work) -> None:
        """Show the importing phase while `work` runs, unless a run owns the phase."""
        owns_phase = self.registry.phase == RunPhase.IDLE
        if owns_phase:
            self.registry.set_phase(RunPhase.IMPORTING)
        try:
            await work
        finally:
            if owns_phase and self.registry.phase == RunPhase.IMPORTING:
                self.registry.set_phase(RunPhase.IDLE)

    async def _analyze_all(self, file_ids: Sequence[str]) -> None:
        await asyncio.gather(*(self._analyze_one(file_id) for file_id in file_ids))

    async def _analyze_one(self, file_id: str) -> None:
        try:
            path = self.registry.get_file(file_id).path
        except TaskNotFoundError:
            return

        try:
            analysis = await self.analyzer.analyze(path)
        except AnalysisError as e:
            self._fail(file_id, str(e))
            return

        self._safe_update(
            file_id,
            size=analysis.size,
            duration=analysis.duration,
            has_video=analysis.has_video,
            has_audio=analysis.has_audio,
        )

    def _fail(self, file_id: str, reason: str) -> None:
        logger.warning(f"Import failed for {file_id}: {reason}")
        self.registry.add_log(f"Error: {reason}")
        self._safe_update(file_id, status=TaskStatus.ERROR, failure_reason=reason)

    def _safe_update(self, file_id: str, **updates) -> bool:
        """Apply updates by id; a record removed meanwhile is ignored."""
        try:
            self.registry.update_file(file_id, **updates)
        except TaskNotFoundError:
            logger.debug(f"File {file_id} left the list before its update arrived")
            return False
        return True

    def _snapshots(self, file_ids: Sequence[str]) -> List[MediaFile]:
        wanted = set(file_ids)
        return [f for f in self.registry.files() if f.id in wanted]
