"""Execution record data model.

One row per invocation of a deployed endpoint, kept for the owner's
history and usage stats. Rows outlive key deactivation.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from apihost.utils.datetime import utcnow


class Execution(SQLModel, table=True):
    """A single invocation of an API resource."""

    __tablename__ = "executions"

    id: str = Field(primary_key=True)
    api_id: str = Field(foreign_key="api_resources.id", index=True)

    # None for anonymous calls to public APIs
    api_key_id: Optional[str] = Field(default=None, index=True)
    caller_id: Optional[str] = Field(default=None, index=True)

    exit_code: Optional[int] = Field(default=None)
    error: Optional[str] = Field(default=None)
    duration_ms: int = Field(default=0)
    request_bytes: int = Field(default=0)
    response_bytes: int = Field(default=0)

    executed_at: datetime = Field(default_factory=utcnow, index=True)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.exit_code == 0
