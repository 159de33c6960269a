"""SQLModel data models."""

from apihost.models.api_key import ApiKey
from apihost.models.api_resource import ApiResource, ApiStatus, Runtime, Visibility
from apihost.models.code_artifact import CodeArtifact
from apihost.models.execution import Execution
from apihost.models.user import User, UserRole

__all__ = [
    "ApiKey",
    "ApiResource",
    "ApiStatus",
    "CodeArtifact",
    "Execution",
    "Runtime",
    "User",
    "UserRole",
    "Visibility",
]
