"""Artifact storage backends."""

from apihost.storage.base import ArtifactStorage
from apihost.storage.local import LocalArtifactStorage

__all__ = ["ArtifactStorage", "LocalArtifactStorage"]
