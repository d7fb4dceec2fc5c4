"""
Tests for the IngestionService.
"""

import asyncio

import pytest

from reelqueue.jobs.models import RunPhase, TaskStatus
from reelqueue.services.ingestion import IngestionError, IngestionService
from reelqueue.transfer import BytesBlob, ChunkedTransferManager

from fakes import FakeAnalyzer, MemorySink


class RemovingAnalyzer(FakeAnalyzer):
    """Delists a file while its analysis is still in flight."""

    def __init__(self, registry, victim: str, **kwargs):
        super().__init__(**kwargs)
        self.registry = registry
        self.victim = victim

    async def analyze(self, path):
        if path == self.victim:
            ids = [f.id for f in self.registry.files() if f.path == path]
            self.registry.remove_files(ids)
        return await super().analyze(path)


class PhaseRecordingAnalyzer(FakeAnalyzer):
    def __init__(self, registry, **kwargs):
        super().__init__(**kwargs)
        self.registry = registry
        self.phases = []

    async def analyze(self, path):
        self.phases.append(self.registry.phase)
        return await super().analyze(path)


class TestImportPaths:
    """On-disk imports."""

    def test_files_are_analyzed(self, registry):
        analyzer = FakeAnalyzer(durations={"/v/a.mov": 100.0, "/v/b.mov": 50.0}, sizes={"/v/a.mov": 7})
        service = IngestionService(registry, analyzer)

        imported = asyncio.run(service.import_paths(["/v/a.mov", "/v/b.mov"]))

        assert [f.path for f in imported] == ["/v/a.mov", "/v/b.mov"]
        assert [f.duration for f in imported] == [100.0, 50.0]
        assert imported[0].size == 7
        assert all(f.status == TaskStatus.WAITING for f in imported)
        assert all(f.has_video for f in imported)
        assert registry.files() == imported

    def test_empty_request_rejected(self, registry):
        service = IngestionService(registry, FakeAnalyzer())
        with pytest.raises(IngestionError):
            asyncio.run(service.import_paths(["", "   "]))

    def test_analysis_failure_is_isolated(self, registry):
        analyzer = FakeAnalyzer(durations={"/v/a.mov": 10.0, "/v/b.mov": 20.0}, broken=["/v/a.mov"])
        service = IngestionService(registry, analyzer)

        imported = asyncio.run(service.import_paths(["/v/a.mov", "/v/b.mov"]))

        assert imported[0].status == TaskStatus.ERROR
        assert "Unreadable media" in imported[0].failure_reason
        assert imported[1].status == TaskStatus.WAITING
        assert imported[1].duration == 20.0
        assert any(line.startswith("Error: ") for line in registry.log())

    def test_out_of_order_results_apply_by_id(self, registry):
        analyzer = FakeAnalyzer(
            durations={"/v/slow.mov": 1.0, "/v/fast.mov": 2.0},
            delays={"/v/slow.mov": 0.05},
        )
        service = IngestionService(registry, analyzer)

        imported = asyncio.run(service.import_paths(["/v/slow.mov", "/v/fast.mov"]))

        assert {f.path: f.duration for f in imported} == {"/v/slow.mov": 1.0, "/v/fast.mov": 2.0}

    def test_file_removed_during_analysis(self, registry):
        analyzer = RemovingAnalyzer(registry, "/v/a.mov", default_duration=10.0)
        service = IngestionService(registry, analyzer)

        imported = asyncio.run(service.import_paths(["/v/a.mov", "/v/b.mov"]))

        assert [f.path for f in imported] == ["/v/b.mov"]
        assert [f.path for f in registry.files()] == ["/v/b.mov"]

    def test_importing_phase(self, registry):
        analyzer = PhaseRecordingAnalyzer(registry, default_duration=1.0)
        service = IngestionService(registry, analyzer)

        asyncio.run(service.import_paths(["/v/a.mov"]))

        assert analyzer.phases == [RunPhase.IMPORTING]
        assert registry.phase == RunPhase.IDLE

    def test_run_phase_is_left_alone(self, registry):
        registry.set_phase(RunPhase.CONVERTING)
        analyzer = PhaseRecordingAnalyzer(registry, default_duration=1.0)

        asyncio.run(IngestionService(registry, analyzer).import_paths(["/v/a.mov"]))

        assert analyzer.phases == [RunPhase.CONVERTING]
        assert registry.phase == RunPhase.CONVERTING

    def test_temp_flag(self, registry):
        service = IngestionService(registry, FakeAnalyzer(default_duration=1.0))
        imported = asyncio.run(service.import_paths(["/v/a.mov"], is_temp=True))
        assert imported[0].is_temp


class TestImportBlobs:
    """Path-less imports go through the transfer manager first."""

    def test_blobs_become_temp_files(self, registry):
        sink = MemorySink()
        analyzer = FakeAnalyzer(default_duration=30.0)
        service = IngestionService(registry, analyzer, ChunkedTransferManager(sink))

        imported = asyncio.run(service.import_blobs([BytesBlob("a.mov", b"aaaa"), BytesBlob("b.mov", b"bb")]))

        assert [f.path for f in imported] == ["/imports/a.mov", "/imports/b.mov"]
        assert all(f.is_temp for f in imported)
        assert all(f.status == TaskStatus.WAITING for f in imported)
        assert all(f.progress == 0.0 for f in imported)
        assert analyzer.calls == ["/imports/a.mov", "/imports/b.mov"]
        assert bytes(sink.files["a.mov"]) == b"aaaa"

    def test_failed_transfer_is_isolated(self, registry):
        sink = MemorySink(fail_names=["bad.mov"])
        analyzer = FakeAnalyzer(default_duration=30.0)
        service = IngestionService(registry, analyzer, ChunkedTransferManager(sink))

        imported = asyncio.run(service.import_blobs([BytesBlob("bad.mov", b"x"), BytesBlob("ok.mov", b"y")]))

        assert imported[0].status == TaskStatus.ERROR
        assert "Disk full" in imported[0].failure_reason
        assert imported[1].status == TaskStatus.WAITING
        assert analyzer.calls == ["/imports/ok.mov"]

    def test_crashing_sink_does_not_strand_uploads(self, registry):
        sink = MemorySink(crash_names=["bad.mov"])
        analyzer = FakeAnalyzer(default_duration=30.0)
        service = IngestionService(registry, analyzer, ChunkedTransferManager(sink))

        imported = asyncio.run(service.import_blobs([BytesBlob("good.mov", b"x"), BytesBlob("bad.mov", b"y")]))

        assert [f.status for f in imported] == [TaskStatus.WAITING, TaskStatus.ERROR]
        assert "sink went away" in imported[1].failure_reason
        assert [f.status for f in registry.files()] == [TaskStatus.WAITING, TaskStatus.ERROR]

    def test_requires_transfer_manager(self, registry):
        service = IngestionService(registry, FakeAnalyzer())
        with pytest.raises(IngestionError):
            asyncio.run(service.import_blobs([BytesBlob("a.mov", b"x")]))

    def test_empty_request_rejected(self, registry):
        service = IngestionService(registry, FakeAnalyzer(), ChunkedTransferManager(MemorySink()))
        with pytest.raises(IngestionError):
            asyncio.run(service.import_blobs([]))
