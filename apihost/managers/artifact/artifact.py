"""ArtifactManager - validates, stores and supersedes uploaded source files.

Upload flow:
1. Ownership check through the registry
2. Filename/extension validation (content-type is ignored)
3. Chunked read with an early size cutoff
4. Under the upload lock: write the blob, then swap the artifact row under
   the transition lock
5. Release the superseded blob once the new row is committed
"""

from __future__ import annotations

import hashlib
import uuid
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apihost.concurrency.locks import get_upload_lock
from apihost.config import get_settings
from apihost.errors import NotFoundError, PayloadTooLargeError, ValidationError
from apihost.managers.api_resource import ApiResourceRegistry
from apihost.models.api_resource import ApiResource
from apihost.models.code_artifact import CodeArtifact
from apihost.storage.base import ArtifactStorage
from apihost.utils.datetime import utcnow
from apihost.validators.upload import language_hint_for, validate_upload_filename

logger = structlog.get_logger()


class UploadSource(Protocol):
    """What the manager needs from an uploaded file (FastAPI's UploadFile fits)."""

    filename: str | None

    async def read(self, size: int = -1) -> bytes: ...


class ArtifactManager:
    """Manages the current code artifact of each API resource."""

    def __init__(self, db_session: AsyncSession, storage: ArtifactStorage) -> None:
        self._db = db_session
        self._storage = storage
        self._settings = get_settings()
        self._log = logger.bind(manager="artifact")

        self._registry = ApiResourceRegistry(db_session, storage)

    async def upload(self, api_id: str, caller_id: str, file: UploadSource) -> ApiResource:
        """Store ``file`` as the resource's current artifact.

        Status is left unchanged; upload never deploys.

        Raises:
            NotFoundError: Unknown or deleted resource (also if deleted mid-upload)
            ForbiddenError: Caller is not the owner
            ValidationError: Bad filename/extension or empty file
            PayloadTooLargeError: File exceeds the size ceiling
        """
        await self._registry.get(api_id, caller_id)

        config = self._settings.storage
        filename = validate_upload_filename(
            file.filename, allowed_extensions=config.allowed_extensions
        )
        data, digest = await self._read_bounded(file, config.max_upload_bytes, config.chunk_size)

        artifact_id = f"art-{uuid.uuid4().hex[:12]}"
        content_ref = f"{api_id}/{artifact_id}/{filename}"
        artifact = CodeArtifact(
            id=artifact_id,
            api_id=api_id,
            filename=filename,
            size_bytes=len(data),
            language_hint=language_hint_for(filename),
            sha256=digest,
            content_ref=content_ref,
            uploaded_at=utcnow(),
        )

        async with await get_upload_lock(api_id):
            await self._storage.write(content_ref, data)
            try:
                api, superseded_ref = await self._registry.attach_artifact(
                    api_id, caller_id, artifact
                )
            except BaseException:
                # Resource vanished or lost a race: nothing points at the new blob
                await self._storage.delete(content_ref)
                raise

        if superseded_ref is not None and superseded_ref != content_ref:
            try:
                await self._storage.delete(superseded_ref)
            except OSError as e:
                self._log.warning("artifact.release_failed", api_id=api_id, error=str(e))

        self._log.info(
            "artifact.upload",
            api_id=api_id,
            artifact_id=artifact_id,
            size_bytes=artifact.size_bytes,
            language_hint=artifact.language_hint,
        )
        return api

    async def get_current(self, api_id: str, caller_id: str) -> CodeArtifact:
        """Metadata of the current artifact (owner only)."""
        await self._registry.get(api_id, caller_id)
        artifact = await self._find(api_id)
        if artifact is None:
            raise NotFoundError(
                "No code uploaded for this API", details={"reason": "no_artifact"}
            )
        return artifact

    async def read_source(self, api: ApiResource) -> str:
        """Load the current artifact's source text for execution."""
        artifact = await self._find(api.id)
        if artifact is None:
            raise NotFoundError(
                "No code uploaded for this API", details={"reason": "no_artifact"}
            )
        try:
            data = await self._storage.read(artifact.content_ref)
        except FileNotFoundError:
            self._log.error("artifact.blob_missing", api_id=api.id, artifact_id=artifact.id)
            raise NotFoundError("Artifact content is unavailable")
        return data.decode("utf-8", errors="replace")

    async def _find(self, api_id: str) -> CodeArtifact | None:
        result = await self._db.execute(
            select(CodeArtifact).where(CodeArtifact.api_id == api_id)
        )
        return result.scalars().first()

    async def _read_bounded(
        self, file: UploadSource, max_bytes: int, chunk_size: int
    ) -> tuple[bytes, str]:
        hasher = hashlib.sha256()
        chunks: list[bytes] = []
        total = 0

        while True:
            chunk = await file.read(chunk_size)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                raise PayloadTooLargeError(
                    f"File exceeds the {max_bytes} byte limit",
                    details={"field": "code", "reason": "too_large", "max_bytes": max_bytes},
                )
            hasher.update(chunk)
            chunks.append(chunk)

        if total == 0:
            raise ValidationError(
                "Uploaded file is empty", details={"field": "code", "reason": "empty_file"}
            )
        return b"".join(chunks), hasher.hexdigest()
