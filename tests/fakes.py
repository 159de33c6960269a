"""Fake implementations for testing.

These fakes allow unit tests to run without a real executor service or
filesystem.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from apihost.adapters.base import ExecutionBackend, ExecutionResult
from apihost.models.user import User, UserRole
from apihost.storage.base import ArtifactStorage


class FakeUpload:
    """Stand-in for FastAPI's UploadFile."""

    def __init__(self, filename: str | None, data: bytes) -> None:
        self.filename = filename
        self._data = data
        self._pos = 0
        self.read_sizes: list[int] = []

    async def read(self, size: int = -1) -> bytes:
        self.read_sizes.append(size)
        if size < 0:
            size = len(self._data) - self._pos
        chunk = self._data[self._pos : self._pos + size]
        self._pos += len(chunk)
        return chunk


class MemoryArtifactStorage(ArtifactStorage):
    """In-memory blob store that records writes and deletes."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def write(self, key: str, data: bytes) -> None:
        self.blobs[key] = data

    async def read(self, key: str) -> bytes:
        try:
            return self.blobs[key]
        except KeyError:
            raise FileNotFoundError(key)

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.blobs.pop(key, None)


class FakeExecutionBackend(ExecutionBackend):
    """Records execute/cancel calls and returns a canned result.

    ``errors`` are raised (in order) before any result is returned;
    ``block`` makes execute wait forever so timeouts and cancellation can
    be exercised.
    """

    def __init__(
        self,
        result: ExecutionResult | None = None,
        *,
        errors: list[BaseException] | None = None,
        block: bool = False,
    ) -> None:
        self.result = result or ExecutionResult(output="ok\n", exit_code=0, duration_ms=12)
        self.errors = list(errors or [])
        self.block = block
        self.execute_calls: list[dict[str, Any]] = []
        self.cancel_calls: list[str] = []
        self.started = asyncio.Event()

    async def execute(self, **kwargs: Any) -> ExecutionResult:
        self.execute_calls.append(kwargs)
        self.started.set()
        if self.errors:
            raise self.errors.pop(0)
        if self.block:
            await asyncio.Event().wait()
        return self.result

    async def cancel(self, execution_id: str) -> None:
        self.cancel_calls.append(execution_id)


async def make_user(
    session: AsyncSession, email: str | None = None, *, password_hash: str = "not-a-real-hash"
) -> User:
    user = User(
        id=f"user-{uuid.uuid4().hex[:12]}",
        email=email or f"{uuid.uuid4().hex[:8]}@example.com",
        name="Test User",
        role=UserRole.BOTH,
        password_hash=password_hash,
    )
    session.add(user)
    await session.commit()
    return user
