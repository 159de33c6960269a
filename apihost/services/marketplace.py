"""Marketplace index - read-only projection of listed API resources.

Listed means ``visibility in {public, paid}`` and ``status == deployed``.
Queries go straight to the registry tables; nothing is cached.
"""

from __future__ import annotations

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from apihost.config import SUPPORTED_RUNTIMES
from apihost.errors import NotFoundError, ValidationError
from apihost.models.api_resource import (
    MARKETPLACE_VISIBILITIES,
    ApiResource,
    ApiStatus,
    Runtime,
)

logger = structlog.get_logger()


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MarketplaceIndex:
    """Public listing of deployed public/paid APIs."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    def _listed(self):
        return select(ApiResource).where(
            ApiResource.status == ApiStatus.DEPLOYED,
            ApiResource.visibility.in_(list(MARKETPLACE_VISIBILITIES)),
        )

    async def list_public(
        self, *, search: str | None = None, runtime: str | None = None
    ) -> list[ApiResource]:
        """List listed resources, newest first.

        ``search`` matches name or description case-insensitively;
        ``runtime`` of None or ``all`` disables the runtime filter.
        """
        query = self._listed()

        if runtime is not None and runtime != "all":
            if runtime not in SUPPORTED_RUNTIMES:
                raise ValidationError(
                    f"Unsupported runtime filter: {runtime}",
                    details={"field": "runtime", "allowed": ["all", *SUPPORTED_RUNTIMES]},
                )
            query = query.where(ApiResource.runtime == Runtime(runtime))

        term = (search or "").strip().lower()
        if term:
            pattern = f"%{_escape_like(term)}%"
            query = query.where(
                or_(
                    func.lower(ApiResource.name).like(pattern, escape="\\"),
                    func.lower(ApiResource.description).like(pattern, escape="\\"),
                )
            )

        result = await self._db.execute(
            query.order_by(ApiResource.created_at.desc(), ApiResource.id)
        )
        return list(result.scalars().all())

    async def get_public(self, api_id: str) -> ApiResource:
        result = await self._db.execute(self._listed().where(ApiResource.id == api_id))
        api = result.scalars().first()
        if api is None:
            raise NotFoundError(f"API not found: {api_id}")
        return api
