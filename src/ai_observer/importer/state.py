"""Per-file import bookkeeping keyed by content hash."""

import hashlib
import time
from enum import StrEnum
from pathlib import Path

from ai_observer.core.models import ImportState
from ai_observer.core.ports import TelemetryStoragePort

_CHUNK_SIZE = 64 * 1024


class FileStatus(StrEnum):
    NEW = "new"
    MODIFIED = "modified"
    CURRENT = "current"


def file_sha256(path: Path | str) -> str:
    """Hex SHA-256 of a file's bytes, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def should_import(status: FileStatus, force: bool) -> bool:
    """New and modified files are imported; current ones only when forced."""
    if status is FileStatus.CURRENT:
        return force
    return True


def status_label(status: FileStatus) -> str:
    """Label used in import summaries (current files show as skipped)."""
    if status is FileStatus.CURRENT:
        return "skipped"
    return status.value


class ImportStateTracker:
    """Decides whether session files need importing and records imports.

    A file's identity is (source, absolute path); its version is the hash
    of its contents, so touching a file without changing it is not a
    modification.
    """

    def __init__(self, storage: TelemetryStoragePort) -> None:
        self._storage = storage

    async def check_status(self, source: str, path: Path | str) -> FileStatus:
        current_hash = file_sha256(path)
        state = await self._storage.get_import_state(source, str(path))
        if state is None:
            return FileStatus.NEW
        if state.file_hash != current_hash:
            return FileStatus.MODIFIED
        return FileStatus.CURRENT

    async def record_import(
        self, source: str, path: Path | str, record_count: int
    ) -> ImportState:
        state = ImportState(
            source=source,
            file_path=str(path),
            file_hash=file_sha256(path),
            imported_at=time.time(),
            record_count=record_count,
        )
        await self._storage.set_import_state(state)
        return state

    async def clear_source(self, source: str) -> int:
        return await self._storage.clear_import_states(source)

    async def list_states(self, source: str) -> list[ImportState]:
        return await self._storage.list_import_states(source)
