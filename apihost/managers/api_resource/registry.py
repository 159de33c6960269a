"""ApiResourceRegistry - owns API resource records and their lifecycle.

States: pending -> deployed <-> stopped, and any state -> deleted (terminal).

Every mutation runs under the per-resource transition lock, re-reads the
row with SELECT ... FOR UPDATE and commits with a compare-and-swap on
``lock_version``. A CAS miss means another writer won and surfaces as
ConflictError; it is never retried here.
"""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apihost.concurrency.locks import cleanup_resource_locks, get_api_lock
from apihost.config import SUPPORTED_RUNTIMES, get_settings
from apihost.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from apihost.models.api_resource import (
    TRANSITIONS,
    ApiResource,
    ApiStatus,
    Runtime,
    Visibility,
)
from apihost.models.code_artifact import CodeArtifact
from apihost.utils.datetime import utcnow

if TYPE_CHECKING:
    from apihost.storage.base import ArtifactStorage

logger = structlog.get_logger()

MAX_NAME_LENGTH = 100
MAX_SLUG_LENGTH = 48
UPDATABLE_FIELDS = ("name", "description", "visibility")

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """URL-safe slug of a resource name.

    >>> slugify("Sum Numbers!")
    'sum-numbers'
    """
    slug = _SLUG_STRIP.sub("-", name.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-") or "api"


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(
            "Name is required", details={"field": "name", "reason": "empty"}
        )
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Name must be at most {MAX_NAME_LENGTH} characters",
            details={"field": "name", "reason": "too_long"},
        )
    return name


def _validate_visibility(visibility: Any) -> Visibility:
    try:
        return Visibility(visibility)
    except ValueError:
        raise ValidationError(
            f"Invalid visibility: {visibility}",
            details={"field": "visibility", "allowed": [v.value for v in Visibility]},
        )


def _validate_runtime(runtime: Any) -> Runtime:
    if runtime not in SUPPORTED_RUNTIMES:
        raise ValidationError(
            f"Unsupported runtime: {runtime}",
            details={"field": "runtime", "allowed": list(SUPPORTED_RUNTIMES)},
        )
    return Runtime(runtime)


class ApiResourceRegistry:
    """Manages API resource lifecycle."""

    def __init__(
        self,
        db_session: AsyncSession,
        storage: "ArtifactStorage | None" = None,
    ) -> None:
        self._db = db_session
        self._storage = storage
        self._settings = get_settings()
        self._log = logger.bind(manager="api_resource")

    async def create(
        self,
        owner_id: str,
        *,
        name: str,
        runtime: str,
        description: str = "",
        version: str = "v1",
        visibility: str = Visibility.PRIVATE.value,
    ) -> ApiResource:
        """Register a new resource in ``pending`` with no artifact.

        Raises:
            ValidationError: Empty/too long name, unsupported runtime or
                unknown visibility
        """
        name = _validate_name(name)
        runtime_value = _validate_runtime(runtime)
        visibility_value = _validate_visibility(visibility)
        version = (version or "").strip() or "v1"

        api_id = f"api-{uuid.uuid4().hex[:12]}"
        base_path = self._settings.endpoints.base_path.rstrip("/")
        now = utcnow()

        api = ApiResource(
            id=api_id,
            owner_id=owner_id,
            name=name,
            description=description or "",
            version=version,
            runtime=runtime_value,
            visibility=visibility_value,
            status=ApiStatus.PENDING,
            endpoint=f"{base_path}/{api_id}/{slugify(name)}",
            lock_version=1,
            created_at=now,
            updated_at=now,
        )
        self._db.add(api)
        await self._db.commit()
        await self._db.refresh(api)

        self._log.info(
            "api.create",
            api_id=api.id,
            owner_id=owner_id,
            runtime=api.runtime.value,
            visibility=api.visibility.value,
        )
        return api

    async def get(self, api_id: str, caller_id: str) -> ApiResource:
        """Get a resource owned by the caller.

        Raises:
            NotFoundError: Unknown or deleted resource
            ForbiddenError: Caller is not the owner
        """
        result = await self._db.execute(select(ApiResource).where(ApiResource.id == api_id))
        api = result.scalars().first()
        if api is None or api.is_deleted:
            raise NotFoundError(f"API not found: {api_id}")
        if api.owner_id != caller_id:
            raise ForbiddenError("Not the owner of this API", details={"api_id": api_id})
        return api

    async def list_for_owner(self, owner_id: str) -> list[ApiResource]:
        """List the owner's non-deleted resources, newest first."""
        result = await self._db.execute(
            select(ApiResource)
            .where(
                ApiResource.owner_id == owner_id,
                ApiResource.status != ApiStatus.DELETED,
            )
            .order_by(ApiResource.created_at.desc(), ApiResource.id)
        )
        return list(result.scalars().all())

    async def get_by_endpoint(self, endpoint: str) -> ApiResource:
        """Resolve a generated endpoint to its resource (any non-deleted state)."""
        result = await self._db.execute(
            select(ApiResource).where(ApiResource.endpoint == endpoint)
        )
        api = result.scalars().first()
        if api is None or api.is_deleted:
            raise NotFoundError("Endpoint not found")
        return api

    async def update(
        self,
        api_id: str,
        caller_id: str,
        changes: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> ApiResource:
        """Update name, description and/or visibility.

        Allowed in any non-deleted state. ``runtime`` is immutable.
        """
        if "runtime" in changes:
            raise ValidationError(
                "runtime cannot be changed after creation",
                details={"field": "runtime", "reason": "immutable"},
            )
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Field cannot be updated: {unknown[0]}",
                details={"field": unknown[0], "reason": "not_updatable"},
            )

        values: dict[str, Any] = {}
        if "name" in changes:
            values["name"] = _validate_name(changes["name"])
        if "description" in changes:
            values["description"] = changes["description"] or ""
        if "visibility" in changes:
            values["visibility"] = _validate_visibility(changes["visibility"])

        async with await get_api_lock(api_id):
            api = await self._lock_for_write(api_id, caller_id, expected_version)
            if values:
                await self._compare_and_swap(api, values)
                await self._db.commit()
                await self._db.refresh(api)

        self._log.info("api.update", api_id=api_id, fields=sorted(values))
        return api

    async def deploy(
        self, api_id: str, caller_id: str, *, expected_version: int | None = None
    ) -> ApiResource:
        """pending|stopped -> deployed. Requires an attached artifact."""
        return await self._transition(
            api_id, caller_id, ApiStatus.DEPLOYED, expected_version=expected_version
        )

    async def stop(
        self, api_id: str, caller_id: str, *, expected_version: int | None = None
    ) -> ApiResource:
        """deployed -> stopped. The endpoint is retained but no longer routable."""
        return await self._transition(
            api_id, caller_id, ApiStatus.STOPPED, expected_version=expected_version
        )

    async def delete(
        self, api_id: str, caller_id: str, *, expected_version: int | None = None
    ) -> None:
        """Any state -> deleted. Irreversible.

        Releases the artifact row and blob and frees the endpoint. A second
        delete raises NotFoundError.
        """
        released_ref: str | None = None

        async with await get_api_lock(api_id):
            api = await self._lock_for_write(api_id, caller_id, expected_version)

            result = await self._db.execute(
                select(CodeArtifact).where(CodeArtifact.api_id == api_id)
            )
            artifact = result.scalars().first()
            if artifact is not None:
                released_ref = artifact.content_ref
                await self._db.delete(artifact)
                await self._db.flush()

            now = utcnow()
            await self._compare_and_swap(
                api,
                {
                    "status": ApiStatus.DELETED,
                    "deleted_at": now,
                    "endpoint": None,
                    "code_artifact_ref": None,
                },
            )
            await self._db.commit()
            await self._db.refresh(api)

        await self._release_blob(released_ref)
        await cleanup_resource_locks(api_id)
        self._log.info("api.delete", api_id=api_id)

    async def attach_artifact(
        self, api_id: str, caller_id: str, artifact: CodeArtifact
    ) -> tuple[ApiResource, str | None]:
        """Make ``artifact`` the current artifact of a resource.

        Called by the artifact manager once the blob is durably written.
        Does not change status.

        Returns:
            (updated resource, storage key of the superseded blob or None)
        """
        async with await get_api_lock(api_id):
            api = await self._lock_for_write(api_id, caller_id, None)

            result = await self._db.execute(
                select(CodeArtifact).where(CodeArtifact.api_id == api_id)
            )
            previous = result.scalars().first()
            superseded_ref = previous.content_ref if previous is not None else None
            if previous is not None:
                await self._db.delete(previous)
                # Row must be gone before the insert: api_id is unique
                await self._db.flush()

            self._db.add(artifact)
            await self._db.flush()
            await self._compare_and_swap(api, {"code_artifact_ref": artifact.id})
            await self._db.commit()
            await self._db.refresh(api)

        self._log.info(
            "api.attach_artifact",
            api_id=api_id,
            artifact_id=artifact.id,
            superseded=superseded_ref is not None,
        )
        return api, superseded_ref

    # -- internals --

    async def _transition(
        self,
        api_id: str,
        caller_id: str,
        target: ApiStatus,
        *,
        expected_version: int | None,
    ) -> ApiResource:
        async with await get_api_lock(api_id):
            api = await self._lock_for_write(api_id, caller_id, expected_version)

            allowed_from = TRANSITIONS[target]
            if api.status not in allowed_from:
                raise PreconditionFailedError(
                    f"Cannot move API from {api.status.value} to {target.value}",
                    details={
                        "current_status": api.status.value,
                        "allowed_from": sorted(s.value for s in allowed_from),
                    },
                )
            if target == ApiStatus.DEPLOYED and api.code_artifact_ref is None:
                raise PreconditionFailedError(
                    "Upload code before deploying",
                    details={"reason": "no_artifact", "current_status": api.status.value},
                )

            previous = api.status
            values: dict[str, Any] = {"status": target}
            if target == ApiStatus.DEPLOYED:
                values["deployed_at"] = utcnow()

            await self._compare_and_swap(api, values)
            await self._db.commit()
            await self._db.refresh(api)

        self._log.info(
            f"api.{'deploy' if target == ApiStatus.DEPLOYED else 'stop'}",
            api_id=api_id,
            from_status=previous.value,
        )
        return api

    async def _lock_for_write(
        self, api_id: str, caller_id: str, expected_version: int | None
    ) -> ApiResource:
        """Re-read the row for update. Caller must hold the api lock."""
        # Drop whatever this session read before the lock was taken
        await self._db.rollback()

        result = await self._db.execute(
            select(ApiResource)
            .where(ApiResource.id == api_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        api = result.scalars().first()
        if api is None or api.is_deleted:
            raise NotFoundError(f"API not found: {api_id}")
        if api.owner_id != caller_id:
            raise ForbiddenError("Not the owner of this API", details={"api_id": api_id})
        if expected_version is not None and api.lock_version != expected_version:
            raise ConflictError(
                "API was modified by another request",
                details={
                    "expected_version": expected_version,
                    "current_version": api.lock_version,
                },
            )
        return api

    async def _compare_and_swap(self, api: ApiResource, values: dict[str, Any]) -> None:
        """UPDATE ... WHERE lock_version = :seen, bumping the version."""
        # Rollback expires ``api``; nothing below may touch its attributes
        api_id = api.id
        seen = api.lock_version
        result = await self._db.execute(
            update(ApiResource)
            .where(ApiResource.id == api_id, ApiResource.lock_version == seen)
            .values(**values, lock_version=seen + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._db.rollback()
            self._log.warning("api.cas_miss", api_id=api_id, seen_version=seen)
            raise ConflictError(
                "API was modified by another request",
                details={"api_id": api_id, "expected_version": seen},
            )

    async def _release_blob(self, content_ref: str | None) -> None:
        if content_ref is None or self._storage is None:
            return
        try:
            await self._storage.delete(content_ref)
        except OSError as e:
            # Row is already gone; a leftover blob is unreachable
            self._log.warning("api.release_blob_failed", error=str(e))
