"""Managers package."""

from apihost.managers.api_resource import ApiResourceRegistry
from apihost.managers.artifact import ArtifactManager

__all__ = ["ApiResourceRegistry", "ArtifactManager"]
