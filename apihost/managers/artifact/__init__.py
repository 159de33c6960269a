"""Code artifact manager."""

from apihost.managers.artifact.artifact import ArtifactManager, UploadSource

__all__ = ["ArtifactManager", "UploadSource"]
