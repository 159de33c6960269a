"""Artifact storage base class - blob persistence abstraction.

Storage is responsible ONLY for bytes under opaque keys.
It does NOT handle:
- Ownership checks
- Validation (size, extension)
- Superseding / versioning policy

Keys are relative, slash-separated and generated by the artifact manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ArtifactStorage(ABC):
    """Abstract artifact blob store."""

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        """Durably write a blob. Overwrites an existing blob with the same key."""
        ...

    @abstractmethod
    async def read(self, key: str) -> bytes:
        """Read a blob.

        Raises:
            FileNotFoundError: If the blob does not exist
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a blob. Idempotent: missing blobs are ignored."""
        ...
