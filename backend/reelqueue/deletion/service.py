"""
Local DeleteService: staged moves to the OS trash.

Tokens map to absolute paths in memory. Nothing is touched on disk until
confirm_delete(); cancel_delete() only forgets the token.

Trash backends:
- macOS:   osascript → Finder "delete POSIX file"
- Windows: PowerShell → Microsoft.VisualBasic FileSystem.DeleteFile(SendToRecycleBin)
- Linux:   gio trash
"""

import asyncio
import logging
import platform
import shutil
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from ..execution.base import DeleteService, LoopBoundLock
from .errors import DeleteCommitError, DeleteRequestError

logger = logging.getLogger(__name__)


TrashMover = Callable[[str], Awaitable[None]]


def trash_command(path: str, system: Optional[str] = None) -> List[str]:
    """
    Build the OS command that moves `path` to the trash.

    Raises:
        DeleteCommitError: If the platform has no supported trash command
    """
    system = system or platform.system()

    if system == "Darwin":
        return ["osascript", "-e", f'tell application "Finder" to delete POSIX file "{path}"']

    if system == "Windows":
        escaped = path.replace("'", "''")
        script = (
            "Add-Type -AssemblyName Microsoft.VisualBasic; "
            f"[Microsoft.VisualBasic.FileIO.FileSystem]::DeleteFile('{escaped}', "
            "'OnlyErrorDialogs', 'SendToRecycleBin')"
        )
        return ["powershell", "-NoProfile", "-Command", script]

    if system == "Linux":
        if shutil.which("gio") is None:
            raise DeleteCommitError(path, "Trash command (gio) not found")
        return ["gio", "trash", path]

    raise DeleteCommitError(path, f"Trash is not supported on {system}")


async def move_to_trash(path: str) -> None:
    """
    Move a file to the OS trash.

    Raises:
        DeleteCommitError: If the command is missing or fails
    """
    cmd = trash_command(path)
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
    except OSError as e:
        raise DeleteCommitError(path, f"Failed to start trash command: {e}") from e

    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise DeleteCommitError(
            path,
            f"Failed to move to trash (exit code {process.returncode})"
            + (f": {detail}" if detail else ""),
        )


class LocalDeleteService(DeleteService):
    """Token map guarded by a lock; confirm moves the file to the OS trash."""

    def __init__(
        self,
        trash_mover: TrashMover = move_to_trash,
        token_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._trash_mover = trash_mover
        self._token_factory = token_factory
        self._pending: Dict[str, str] = {}
        self._lock = LoopBoundLock()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request_delete(self, path: str) -> str:
        if not path:
            raise DeleteRequestError(path, "Path is empty")

        file_path = Path(path)
        if not file_path.exists():
            raise DeleteRequestError(path, "File not found")

        async with self._lock:
            token = self._token_factory()
            self._pending[token] = str(file_path.absolute())

        logger.debug(f"[DELETE] Issued token for {path}")
        return token

    async def confirm_delete(self, token: str) -> None:
        async with self._lock:
            path = self._pending.get(token)
            if path is None:
                raise DeleteCommitError("", f"Invalid delete token: {token}")

            await self._trash_mover(path)
            del self._pending[token]

        logger.info(f"[DELETE] Moved to trash: {path}")

    async def cancel_delete(self, token: str) -> None:
        async with self._lock:
            self._pending.pop(token, None)
