"""API resource data model.

An API resource is a registered, versioned unit of deployable code.
Lifecycle: pending → deployed ⇄ stopped, and any state → deleted (terminal).
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from apihost.utils.datetime import utcnow


class ApiStatus(str, Enum):
    PENDING = "pending"  # Created, never deployed
    DEPLOYED = "deployed"  # Endpoint is routable
    STOPPED = "stopped"  # Endpoint retained but not routable
    DELETED = "deleted"  # Tombstone (internal only)


class Visibility(str, Enum):
    PRIVATE = "private"  # Owner only
    PUBLIC = "public"  # Free, listed in marketplace
    PAID = "paid"  # Listed in marketplace, key-gated


class Runtime(str, Enum):
    PYTHON = "python"
    NODEJS = "nodejs"
    GO = "go"


# Allowed source states per transition target
TRANSITIONS: dict[ApiStatus, frozenset[ApiStatus]] = {
    ApiStatus.DEPLOYED: frozenset({ApiStatus.PENDING, ApiStatus.STOPPED}),
    ApiStatus.STOPPED: frozenset({ApiStatus.DEPLOYED}),
    ApiStatus.DELETED: frozenset(
        {ApiStatus.PENDING, ApiStatus.DEPLOYED, ApiStatus.STOPPED}
    ),
}

MARKETPLACE_VISIBILITIES = frozenset({Visibility.PUBLIC, Visibility.PAID})


class ApiResource(SQLModel, table=True):
    """API resource - external-facing, owned by exactly one user."""

    __tablename__ = "api_resources"

    id: str = Field(primary_key=True)
    owner_id: str = Field(foreign_key="users.id", index=True)

    name: str
    description: str = Field(default="")
    version: str = Field(default="v1")

    # Fixed at creation; no code path mutates it
    runtime: Runtime
    visibility: Visibility = Field(default=Visibility.PRIVATE, index=True)
    status: ApiStatus = Field(default=ApiStatus.PENDING, index=True)

    # Current artifact (None until first upload, cleared on delete)
    code_artifact_ref: Optional[str] = Field(default=None)

    # Derived once at creation; cleared on delete
    endpoint: Optional[str] = Field(default=None, index=True, unique=True)

    # Optimistic locking
    lock_version: int = Field(default=1)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deployed_at: Optional[datetime] = Field(default=None)
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.status == ApiStatus.DELETED

    @property
    def is_routable(self) -> bool:
        """Endpoint accepts traffic only while deployed."""
        return self.status == ApiStatus.DEPLOYED
