"""User data model.

A user is a developer (publishes APIs), a consumer (holds keys for
other people's APIs), or both.
"""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from apihost.utils.datetime import utcnow


class UserRole(str, Enum):
    DEVELOPER = "developer"
    CONSUMER = "consumer"
    BOTH = "both"


class User(SQLModel, table=True):
    """Platform account."""

    __tablename__ = "users"

    id: str = Field(primary_key=True)
    email: str = Field(index=True, unique=True)  # stored lower-cased
    name: str
    role: UserRole = Field(default=UserRole.DEVELOPER)

    # bcrypt hash; never serialized to clients
    password_hash: str

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
