"""API Key data model.

Stores hashed API keys for marketplace access.
Plaintext keys are never stored, only SHA-256 hashes plus the first 12
and last 8 characters for masked display.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from apihost.utils.datetime import utcnow


class ApiKey(SQLModel, table=True):
    """API Key issued to a user, optionally scoped to one API resource."""

    __tablename__ = "api_keys"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    api_id: Optional[str] = Field(default=None, index=True)  # None = unscoped
    name: str

    key_hash: str = Field(index=True, unique=True)  # SHA-256 hex digest
    key_prefix: str  # First 12 chars of plaintext (e.g., "apk_3f9a1c2b")
    key_suffix: str  # Last 8 chars of plaintext

    # Deactivation is terminal: nothing ever sets this back to True
    is_active: bool = Field(default=True)
    expires_at: Optional[datetime] = Field(default=None)
    deactivated_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_usable(self, now: datetime) -> bool:
        """Active and not past expiry."""
        return self.is_active and not self.is_expired(now)
