"""
Tests for LocalDeleteService and the OS trash commands.

The trash mover is injected; nothing is moved to a real trash.
"""

import asyncio

import pytest

from reelqueue.deletion import service as delete_service_module
from reelqueue.deletion.errors import DeleteCommitError, DeleteRequestError
from reelqueue.deletion.service import LocalDeleteService, trash_command


class RecordingMover:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.moved = []

    async def __call__(self, path: str) -> None:
        if self.fail:
            raise DeleteCommitError(path, "Failed to move to trash (exit code 1)")
        self.moved.append(path)


class TestTrashCommand:
    """Per-platform trash commands."""

    def test_macos(self):
        cmd = trash_command("/Users/me/clip.mov", system="Darwin")
        assert cmd[0] == "osascript"
        assert 'delete POSIX file "/Users/me/clip.mov"' in cmd[-1]

    def test_windows_escapes_quotes(self):
        cmd = trash_command("C:\\clips\\it's.mov", system="Windows")
        assert cmd[0] == "powershell"
        assert "it''s.mov" in cmd[-1]
        assert "SendToRecycleBin" in cmd[-1]

    def test_linux(self, monkeypatch):
        monkeypatch.setattr(delete_service_module.shutil, "which", lambda name: "/usr/bin/gio")
        assert trash_command("/home/me/clip.mov", system="Linux") == ["gio", "trash", "/home/me/clip.mov"]

    def test_linux_without_gio(self, monkeypatch):
        monkeypatch.setattr(delete_service_module.shutil, "which", lambda name: None)
        with pytest.raises(DeleteCommitError):
            trash_command("/home/me/clip.mov", system="Linux")

    def test_unsupported_platform(self):
        with pytest.raises(DeleteCommitError):
            trash_command("/clip.mov", system="Plan9")


class TestLocalDeleteService:
    """Tokens map to paths until confirm or cancel."""

    def test_request_then_confirm(self, tmp_path):
        clip = tmp_path / "clip.mov"
        clip.write_bytes(b"x")
        mover = RecordingMover()
        service = LocalDeleteService(trash_mover=mover, token_factory=lambda: "tok")

        token = asyncio.run(service.request_delete(str(clip)))
        assert token == "tok"
        assert service.pending_count == 1
        assert mover.moved == []

        asyncio.run(service.confirm_delete(token))
        assert mover.moved == [str(clip.absolute())]
        assert service.pending_count == 0

    def test_missing_file_rejected(self, tmp_path):
        service = LocalDeleteService(trash_mover=RecordingMover())
        with pytest.raises(DeleteRequestError):
            asyncio.run(service.request_delete(str(tmp_path / "gone.mov")))

    def test_empty_path_rejected(self):
        service = LocalDeleteService(trash_mover=RecordingMover())
        with pytest.raises(DeleteRequestError):
            asyncio.run(service.request_delete(""))

    def test_unknown_token(self):
        service = LocalDeleteService(trash_mover=RecordingMover())
        with pytest.raises(DeleteCommitError):
            asyncio.run(service.confirm_delete("nope"))

    def test_cancel_forgets_token(self, tmp_path):
        clip = tmp_path / "clip.mov"
        clip.write_bytes(b"x")
        mover = RecordingMover()
        service = LocalDeleteService(trash_mover=mover)

        token = asyncio.run(service.request_delete(str(clip)))
        asyncio.run(service.cancel_delete(token))

        assert service.pending_count == 0
        assert mover.moved == []
        assert clip.exists()
        with pytest.raises(DeleteCommitError):
            asyncio.run(service.confirm_delete(token))

    def test_cancel_unknown_token_is_noop(self):
        asyncio.run(LocalDeleteService(trash_mover=RecordingMover()).cancel_delete("nope"))

    def test_mover_failure_propagates(self, tmp_path):
        clip = tmp_path / "clip.mov"
        clip.write_bytes(b"x")
        service = LocalDeleteService(trash_mover=RecordingMover(fail=True))

        token = asyncio.run(service.request_delete(str(clip)))
        with pytest.raises(DeleteCommitError):
            asyncio.run(service.confirm_delete(token))

    def test_contended_confirms_across_event_loops(self, tmp_path):
        """
        GIVEN: A service built before any event loop runs
        WHEN: Two loops in turn confirm two tokens concurrently
        THEN: Both rounds complete; the lock follows the running loop
        """

        class SlowMover(RecordingMover):
            async def __call__(self, path: str) -> None:
                await asyncio.sleep(0)
                await super().__call__(path)

        mover = SlowMover()
        service = LocalDeleteService(trash_mover=mover)
        clips = []
        for name in ("a.mov", "b.mov", "c.mov", "d.mov"):
            clip = tmp_path / name
            clip.write_bytes(b"x")
            clips.append(str(clip))

        async def confirm_pair(paths):
            tokens = [await service.request_delete(p) for p in paths]
            await asyncio.gather(*(service.confirm_delete(t) for t in tokens))

        asyncio.run(confirm_pair(clips[:2]))
        asyncio.run(confirm_pair(clips[2:]))

        assert sorted(mover.moved) == sorted(str(tmp_path / n) for n in ("a.mov", "b.mov", "c.mov", "d.mov"))
        assert service.pending_count == 0
