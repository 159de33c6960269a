"""Local filesystem artifact storage.

Blocking filesystem calls run in worker threads so the event loop is
never stalled by large writes.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import structlog

from apihost.storage.base import ArtifactStorage

logger = structlog.get_logger()


class LocalArtifactStorage(ArtifactStorage):
    """Stores artifact blobs under a root directory on the host."""

    def __init__(self, root_path: str | Path) -> None:
        self._root = Path(root_path).resolve()
        self._log = logger.bind(storage="local")

    def _path_for(self, key: str) -> Path:
        """Resolve a storage key to a path inside the root.

        Raises:
            ValueError: If the key escapes the storage root
        """
        path = (self._root / key).resolve()
        if path != self._root and self._root not in path.parents:
            raise ValueError(f"Storage key escapes root: {key!r}")
        return path

    def _write_sync(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # Atomic rename: readers never observe a partially written blob
        os.replace(tmp_path, path)

    def _delete_sync(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        # Prune now-empty parent directories up to the root
        parent = path.parent
        while parent != self._root:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    async def write(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(self._write_sync, path, data)
        self._log.debug("storage.write", key=key, size=len(data))

    async def read(self, key: str) -> bytes:
        path = self._path_for(key)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(self._delete_sync, path)
        self._log.debug("storage.delete", key=key)
