"""Domain models for stored documents and their tagged metadata.

A Document is the unit that gets embedded and persisted. Its metadata is a
tagged variant keyed by ``type``: every variant shares the reserved keys of
``BaseMetadata`` and adds the fields that only make sense for that kind of
record. Persisted and wire representations use the camelCase reserved keys
(``fileName``, ``uploadedAt``, ...) so filters can be written against them.
"""

import time
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DocumentType(str, Enum):
    """Kinds of records held in the document store."""

    SOURCE = "source"
    PROJECT_DETAILS = "project_details"
    CONVERSATION = "conversation"
    AI_MEMORY = "ai_memory"


class ContentFormat(str, Enum):
    """Shape of extracted text, decided by the extraction step."""

    PLAIN = "plain"
    TRANSCRIPT = "transcript"


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_document_id(file_name: str) -> str:
    """Build a unique document id from a file name, a timestamp and a random suffix."""
    return f"{file_name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}"


@dataclass
class BaseMetadata:
    """Reserved metadata keys shared by every document type.

    Attributes:
        file_name: Name of the file or logical record the document came from
        file_type: Coarse file kind ("text", "pdf", "transcript", ...)
        uploaded_at: ISO-8601 creation timestamp
        file_url: Blob locator of the original upload, if any
        file_path: Blob key (pathname) of the original upload, if any
        has_blob: True once the original upload is known to be in blob storage
        extra: Any non-reserved keys supplied by the caller
        score: Similarity score, set on query results only and never persisted
    """

    file_name: str = ""
    file_type: str = "text"
    uploaded_at: str = field(default_factory=utc_now_iso)
    file_url: str | None = None
    file_path: str | None = None
    has_blob: bool = False
    extra: dict[str, Any] = field(default_factory=dict)
    score: float | None = None

    type: DocumentType = DocumentType.SOURCE

    _KEYS = {
        "file_name": "fileName",
        "file_type": "fileType",
        "uploaded_at": "uploadedAt",
        "file_url": "fileUrl",
        "file_path": "filePath",
        "has_blob": "hasBlob",
    }

    def to_dict(self, include_score: bool = False) -> dict[str, Any]:
        """Serialize to the camelCase wire/persisted form."""
        data: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name in ("extra", "score", "type"):
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            key = self._wire_key(f.name)
            data[key] = value.value if isinstance(value, Enum) else value
        data["type"] = self.type.value
        if include_score and self.score is not None:
            data["score"] = self.score
        return data

    @classmethod
    def _wire_key(cls, name: str) -> str:
        if name in BaseMetadata._KEYS:
            return BaseMetadata._KEYS[name]
        head, *rest = name.split("_")
        return head + "".join(part.capitalize() for part in rest)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BaseMetadata":
        """Build an instance of this variant from its wire form."""
        data = dict(data)
        data.pop("type", None)
        score = data.pop("score", None)
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in ("extra", "score", "type"):
                continue
            key = cls._wire_key(f.name)
            if key in data:
                kwargs[f.name] = data.pop(key)
        instance = cls(**kwargs)
        instance.extra = data
        instance.score = score
        return instance

    def matches(self, filter_: dict[str, Any] | None) -> bool:
        """Exact-match AND semantics across every provided filter field."""
        return matches_filter(self.to_dict(), filter_)


def normalize_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def matches_filter(metadata: dict[str, Any], filter_: dict[str, Any] | None) -> bool:
    """Exact-match AND semantics over wire-form metadata fields."""
    if not filter_:
        return True
    return all(
        normalize_value(metadata.get(key)) == normalize_value(value)
        for key, value in filter_.items()
    )


@dataclass
class SourceMetadata(BaseMetadata):
    """Metadata for a chunk of an uploaded source file."""

    source_id: str | None = None
    chunk_index: int = 0
    total_chunks: int = 1
    content_format: ContentFormat = ContentFormat.PLAIN
    timestamp: str | None = None

    type: DocumentType = DocumentType.SOURCE

    def __post_init__(self) -> None:
        self.content_format = ContentFormat(self.content_format)


@dataclass
class ProjectDetailsMetadata(BaseMetadata):
    """Metadata for the single free-text project description."""

    type: DocumentType = DocumentType.PROJECT_DETAILS


@dataclass
class ConversationMetadata(BaseMetadata):
    """Metadata for a stored chat transcript."""

    message_count: int = 0

    type: DocumentType = DocumentType.CONVERSATION


@dataclass
class AIMemoryMetadata(BaseMetadata):
    """Metadata for an assistant-authored analysis kept for later prompts."""

    memory_kind: str = "insight"
    title: str = ""
    tags: list[str] = field(default_factory=list)

    type: DocumentType = DocumentType.AI_MEMORY


METADATA_TYPES: dict[DocumentType, type[BaseMetadata]] = {
    DocumentType.SOURCE: SourceMetadata,
    DocumentType.PROJECT_DETAILS: ProjectDetailsMetadata,
    DocumentType.CONVERSATION: ConversationMetadata,
    DocumentType.AI_MEMORY: AIMemoryMetadata,
}


def metadata_from_dict(data: dict[str, Any]) -> BaseMetadata:
    """Dispatch on the ``type`` key to build the matching metadata variant.

    Raises:
        ValueError: If ``type`` is not a known DocumentType value.
    """
    doc_type = DocumentType(data.get("type", DocumentType.SOURCE.value))
    return METADATA_TYPES[doc_type].from_dict(data)


@dataclass(eq=False)
class Document:
    """A stored, embeddable unit of text.

    Attributes:
        id: Globally unique, never reused identifier
        content: Full text of the unit
        embedding: Vector whose length equals the index dimension
        metadata: Tagged metadata variant
    """

    id: str
    content: str
    embedding: list[float]
    metadata: BaseMetadata

    @property
    def type(self) -> DocumentType:
        return self.metadata.type

    def to_dict(self, include_score: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "embedding": list(self.embedding),
            "metadata": self.metadata.to_dict(include_score=include_score),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            embedding=list(data.get("embedding", [])),
            metadata=metadata_from_dict(data.get("metadata", {})),
        )
