"""Data models for RavenDB vector storage."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class VectorRecord:
    """A vector store entry: id, embedding and metadata.

    The document text travels inside ``metadata["content"]`` so a query hit
    can be used without a second lookup.

    Note: eq=False ensures each instance is unique and hashable by identity,
    which is required for RavenDB's session entity tracking.

    Attributes:
        Id: RavenDB document ID, equal to the Document id
        record_id: Copy of the id kept in the stored body for raw queries
        embedding: Vector embedding of the content
        metadata: Document metadata including ``content``
    """

    Id: str | None = None
    record_id: str = ""
    embedding: list[float] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __hash__(self) -> int:
        """Hash by object identity for RavenDB session tracking."""
        return id(self)


@dataclass
class VectorMatch:
    """A ranked query hit."""

    id: str
    score: float
    metadata: dict[str, Any]
