"""Unit tests for ArtifactManager.

Upload validation (size, extension, empty files), superseding of the
previous artifact, and behaviour when the resource disappears mid-upload.
"""

from __future__ import annotations

import hashlib
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apihost.config import Settings
from apihost.errors import (
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)
from apihost.managers.api_resource import ApiResourceRegistry
from apihost.managers.artifact import ArtifactManager
from apihost.models.api_resource import ApiStatus
from apihost.models.code_artifact import CodeArtifact
from tests.fakes import FakeUpload, MemoryArtifactStorage

MAX_BYTES = 10 * 1024 * 1024


@pytest.fixture(autouse=True)
def patched_settings(fake_settings: Settings):
    with patch("apihost.managers.api_resource.registry.get_settings", return_value=fake_settings):
        with patch("apihost.managers.artifact.artifact.get_settings", return_value=fake_settings):
            yield


@pytest.fixture
def registry(db_session: AsyncSession, storage: MemoryArtifactStorage) -> ApiResourceRegistry:
    return ApiResourceRegistry(db_session, storage)


@pytest.fixture
def manager(db_session: AsyncSession, storage: MemoryArtifactStorage) -> ArtifactManager:
    return ArtifactManager(db_session, storage)


@pytest.fixture
async def api_id(registry: ApiResourceRegistry, owner_id: str) -> str:
    api = await registry.create(owner_id, name="Sum", runtime="python")
    return api.id


class TestUpload:
    async def test_upload_attaches_artifact_without_deploying(
        self,
        manager: ArtifactManager,
        storage: MemoryArtifactStorage,
        db_session: AsyncSession,
        api_id: str,
        owner_id: str,
    ):
        data = b"print('hi')\n" * 170  # ~2 KB

        api = await manager.upload(api_id, owner_id, FakeUpload("sum.py", data))

        assert api.status == ApiStatus.PENDING
        assert api.code_artifact_ref is not None
        assert api.lock_version == 2

        result = await db_session.execute(
            select(CodeArtifact).where(CodeArtifact.api_id == api_id)
        )
        artifact = result.scalars().one()
        assert artifact.id == api.code_artifact_ref
        assert artifact.filename == "sum.py"
        assert artifact.size_bytes == len(data)
        assert artifact.language_hint == "python"
        assert artifact.sha256 == hashlib.sha256(data).hexdigest()
        assert storage.blobs[artifact.content_ref] == data
        assert artifact.content_ref.startswith(f"{api_id}/{artifact.id}/")

    async def test_upload_reads_in_chunks(
        self, manager: ArtifactManager, api_id: str, owner_id: str, fake_settings: Settings
    ):
        upload = FakeUpload("sum.py", b"x" * 1000)

        await manager.upload(api_id, owner_id, upload)

        assert set(upload.read_sizes) == {fake_settings.storage.chunk_size}

    async def test_new_upload_supersedes_previous(
        self,
        manager: ArtifactManager,
        storage: MemoryArtifactStorage,
        db_session: AsyncSession,
        api_id: str,
        owner_id: str,
    ):
        first = await manager.upload(api_id, owner_id, FakeUpload("v1.py", b"print(1)\n"))
        first_ref = first.code_artifact_ref
        first_key = next(iter(storage.blobs))

        second = await manager.upload(api_id, owner_id, FakeUpload("v2.js", b"console.log(2)\n"))

        assert second.code_artifact_ref != first_ref
        assert first_key in storage.deleted
        assert list(storage.blobs) != [first_key]
        assert len(storage.blobs) == 1

        result = await db_session.execute(
            select(CodeArtifact).where(CodeArtifact.api_id == api_id)
        )
        artifacts = result.scalars().all()
        assert len(artifacts) == 1
        assert artifacts[0].filename == "v2.js"
        assert artifacts[0].language_hint == "nodejs"

    async def test_directory_components_are_dropped(
        self, manager: ArtifactManager, db_session: AsyncSession, api_id: str, owner_id: str
    ):
        await manager.upload(api_id, owner_id, FakeUpload("../../etc/sum.py", b"x = 1\n"))

        artifact = await manager.get_current(api_id, owner_id)
        assert artifact.filename == "sum.py"

    @pytest.mark.parametrize("filename", ["main.PY", "index.Js", "main.go", "handler.ts"])
    async def test_allowed_extensions_case_insensitive(
        self, manager: ArtifactManager, api_id: str, owner_id: str, filename: str
    ):
        api = await manager.upload(api_id, owner_id, FakeUpload(filename, b"code"))
        assert api.code_artifact_ref is not None

    @pytest.mark.parametrize("filename", ["sum.rb", "sum.py.exe", "Makefile", "archive.zip"])
    async def test_disallowed_extension_rejected(
        self,
        manager: ArtifactManager,
        storage: MemoryArtifactStorage,
        api_id: str,
        owner_id: str,
        filename: str,
    ):
        with pytest.raises(ValidationError) as exc_info:
            await manager.upload(api_id, owner_id, FakeUpload(filename, b"code"))

        assert exc_info.value.details["reason"] == "unsupported_extension"
        assert storage.blobs == {}

    async def test_file_at_limit_accepted(
        self, manager: ArtifactManager, api_id: str, owner_id: str
    ):
        api = await manager.upload(api_id, owner_id, FakeUpload("big.py", b"#" * MAX_BYTES))
        assert api.code_artifact_ref is not None

    async def test_file_over_limit_rejected(
        self,
        manager: ArtifactManager,
        storage: MemoryArtifactStorage,
        api_id: str,
        owner_id: str,
    ):
        with pytest.raises(PayloadTooLargeError) as exc_info:
            await manager.upload(api_id, owner_id, FakeUpload("big.py", b"#" * (MAX_BYTES + 1)))

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.details["max_bytes"] == MAX_BYTES
        assert storage.blobs == {}

    async def test_empty_file_rejected(
        self, manager: ArtifactManager, api_id: str, owner_id: str
    ):
        with pytest.raises(ValidationError) as exc_info:
            await manager.upload(api_id, owner_id, FakeUpload("sum.py", b""))
        assert exc_info.value.details["reason"] == "empty_file"

    async def test_missing_filename_rejected(
        self, manager: ArtifactManager, api_id: str, owner_id: str
    ):
        with pytest.raises(ValidationError):
            await manager.upload(api_id, owner_id, FakeUpload(None, b"code"))

    async def test_non_owner_is_forbidden(
        self,
        manager: ArtifactManager,
        storage: MemoryArtifactStorage,
        api_id: str,
        stranger_id: str,
    ):
        with pytest.raises(ForbiddenError):
            await manager.upload(api_id, stranger_id, FakeUpload("sum.py", b"code"))
        assert storage.blobs == {}

    async def test_upload_to_deleted_resource_is_not_found(
        self,
        manager: ArtifactManager,
        registry: ApiResourceRegistry,
        api_id: str,
        owner_id: str,
    ):
        await registry.delete(api_id, owner_id)

        with pytest.raises(NotFoundError):
            await manager.upload(api_id, owner_id, FakeUpload("sum.py", b"code"))

    async def test_resource_deleted_mid_upload_discards_blob(
        self,
        db_session: AsyncSession,
        registry: ApiResourceRegistry,
        api_id: str,
        owner_id: str,
    ):
        class DeletingStorage(MemoryArtifactStorage):
            async def write(self, key: str, data: bytes) -> None:
                await super().write(key, data)
                # Resource is deleted between blob write and row swap
                await registry.delete(api_id, owner_id)

        storage = DeletingStorage()
        manager = ArtifactManager(db_session, storage)

        with pytest.raises(NotFoundError):
            await manager.upload(api_id, owner_id, FakeUpload("sum.py", b"code"))

        assert storage.blobs == {}


class TestReadBack:
    async def test_get_current_without_upload(
        self, manager: ArtifactManager, api_id: str, owner_id: str
    ):
        with pytest.raises(NotFoundError) as exc_info:
            await manager.get_current(api_id, owner_id)
        assert exc_info.value.details["reason"] == "no_artifact"

    async def test_read_source(
        self,
        manager: ArtifactManager,
        registry: ApiResourceRegistry,
        api_id: str,
        owner_id: str,
    ):
        await manager.upload(api_id, owner_id, FakeUpload("sum.py", b"print(1 + 2)\n"))
        api = await registry.get(api_id, owner_id)

        assert await manager.read_source(api) == "print(1 + 2)\n"

    async def test_read_source_missing_blob(
        self,
        manager: ArtifactManager,
        registry: ApiResourceRegistry,
        storage: MemoryArtifactStorage,
        api_id: str,
        owner_id: str,
    ):
        await manager.upload(api_id, owner_id, FakeUpload("sum.py", b"print(1)\n"))
        storage.blobs.clear()
        api = await registry.get(api_id, owner_id)

        with pytest.raises(NotFoundError) as exc_info:
            await manager.read_source(api)
        # Storage location never leaks
        assert api_id not in exc_info.value.message
