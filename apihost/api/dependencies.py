"""FastAPI dependencies.

Provides dependency injection for:
- Database sessions
- Managers (Registry, Artifact)
- Services (API keys, users, marketplace, execution gateway and log)
- Storage and execution backend
- Authentication
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from apihost.adapters.base import ExecutionBackend
from apihost.adapters.executor import ExecutorAdapter
from apihost.config import get_settings
from apihost.db.session import get_session_dependency
from apihost.errors import NotFoundError, UnauthorizedError, ValidationError
from apihost.managers.api_resource import ApiResourceRegistry
from apihost.managers.artifact import ArtifactManager
from apihost.models.user import User
from apihost.services.api_key import ApiKeyService
from apihost.services.executions import ExecutionLog
from apihost.services.marketplace import MarketplaceIndex
from apihost.services.sandbox_gateway import ExecutionGateway
from apihost.services.tokens import decode_access_token
from apihost.services.users import UserService
from apihost.storage.base import ArtifactStorage
from apihost.storage.local import LocalArtifactStorage

logger = structlog.get_logger()


@lru_cache
def get_storage() -> ArtifactStorage:
    """Get cached artifact storage backend."""
    return LocalArtifactStorage(get_settings().storage.root_path)


@lru_cache
def get_execution_backend() -> ExecutionBackend:
    """Get cached execution backend adapter."""
    sandbox = get_settings().sandbox
    return ExecutorAdapter(sandbox.executor_url, connect_timeout=sandbox.connect_timeout)


SessionDep = Annotated[AsyncSession, Depends(get_session_dependency)]
StorageDep = Annotated[ArtifactStorage, Depends(get_storage)]
BackendDep = Annotated[ExecutionBackend, Depends(get_execution_backend)]


async def get_registry(session: SessionDep, storage: StorageDep) -> ApiResourceRegistry:
    return ApiResourceRegistry(session, storage)


async def get_artifact_manager(session: SessionDep, storage: StorageDep) -> ArtifactManager:
    return ArtifactManager(session, storage)


async def get_api_key_service(session: SessionDep) -> ApiKeyService:
    return ApiKeyService(session)


async def get_user_service(session: SessionDep) -> UserService:
    return UserService(session)


async def get_marketplace(session: SessionDep) -> MarketplaceIndex:
    return MarketplaceIndex(session)


async def get_execution_log(session: SessionDep) -> ExecutionLog:
    return ExecutionLog(session)


async def get_execution_gateway(backend: BackendDep) -> ExecutionGateway:
    return ExecutionGateway(backend, get_settings().sandbox)


UserServiceDep = Annotated[UserService, Depends(get_user_service)]


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


async def authenticate(request: Request, users: UserServiceDep) -> User:
    """Resolve the bearer access token to a live user.

    The token is decoded and the user re-loaded from the database on every
    request; nothing the client caches about its identity is trusted.

    Raises:
        UnauthorizedError: Missing, invalid or expired token, or unknown user
    """
    token = _bearer_token(request)
    if token is None:
        raise UnauthorizedError("Authentication required")

    user_id = decode_access_token(token)
    try:
        user = await users.get_by_id(user_id)
    except NotFoundError:
        logger.info("auth.unknown_user", user_id=user_id)
        raise UnauthorizedError("Invalid token")

    request.state.user_id = user.id
    return user


def presented_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> str | None:
    """API key from ``X-API-Key`` or ``Authorization: Bearer apk_...``."""
    if x_api_key:
        return x_api_key.strip()
    token = _bearer_token(request)
    prefix = get_settings().security.api_key_prefix
    if token is not None and token.startswith(prefix):
        return token
    return None


def expected_version(
    if_match: Annotated[str | None, Header(alias="If-Match")] = None,
) -> int | None:
    """Parse an optional ``If-Match: <lock_version>`` header."""
    if if_match is None:
        return None
    value = if_match.strip().strip('"')
    if value.startswith("W/"):
        value = value[2:].strip('"')
    try:
        return int(value)
    except ValueError:
        raise ValidationError(
            "If-Match must be an integer version",
            details={"field": "If-Match", "reason": "not_an_integer"},
        )


# Type aliases for cleaner dependency injection
RegistryDep = Annotated[ApiResourceRegistry, Depends(get_registry)]
ArtifactManagerDep = Annotated[ArtifactManager, Depends(get_artifact_manager)]
ApiKeyServiceDep = Annotated[ApiKeyService, Depends(get_api_key_service)]
MarketplaceDep = Annotated[MarketplaceIndex, Depends(get_marketplace)]
ExecutionLogDep = Annotated[ExecutionLog, Depends(get_execution_log)]
GatewayDep = Annotated[ExecutionGateway, Depends(get_execution_gateway)]
CurrentUser = Annotated[User, Depends(authenticate)]
PresentedKeyDep = Annotated[str | None, Depends(presented_api_key)]
ExpectedVersionDep = Annotated[int | None, Depends(expected_version)]
