"""Code artifact data model.

One current artifact per API resource; a new upload supersedes the
previous one and releases its storage.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from apihost.utils.datetime import utcnow


class CodeArtifact(SQLModel, table=True):
    """Uploaded source file currently attached to an API resource."""

    __tablename__ = "code_artifacts"

    id: str = Field(primary_key=True)
    api_id: str = Field(foreign_key="api_resources.id", index=True, unique=True)

    filename: str
    size_bytes: int
    language_hint: str
    sha256: str

    # Storage key understood by the storage backend; never returned to clients
    content_ref: str

    uploaded_at: datetime = Field(default_factory=utcnow)
