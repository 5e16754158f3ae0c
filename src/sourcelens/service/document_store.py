"""Document storage orchestration: chunk, embed, persist, search and delete.

The DocumentStore owns the mapping from Document id to its persisted form.
Each Document is written twice: as a JSON record blob under ``documents/``
and as a vector record in the vector store. The vector store is the
authoritative record; the original upload blob is optional and its absence
is repaired by the reconciler, never here.

Usage:
    store = DocumentStore(embedder, vector_store, blob_store)
    await store.initialize()
    docs = await store.ingest_source(text, SourceMetadata(file_name="a.txt"))
    hits = await store.search_similar("question", {"type": "source"})
"""

import asyncio
import json
import logging
from dataclasses import replace
from typing import Any

from sourcelens.constants import (
    DEFAULT_TOP_K,
    DOCUMENT_PREFIX,
    MEMORY_KINDS,
    PROJECT_DETAILS_NAME,
    UPLOAD_PREFIX,
)
from sourcelens.exceptions import (
    EmbeddingError,
    NotInitializedError,
    SourceLensError,
    StorageError,
    ValidationError,
)
from sourcelens.service.blob_store import BlobStore
from sourcelens.service.chunking import Chunker
from sourcelens.service.database.utils import cosine_similarity
from sourcelens.service.database.vector_store import VectorStore
from sourcelens.service.embeddings import EmbeddingProvider, validate_vector
from sourcelens.service.models import (
    AIMemoryMetadata,
    BaseMetadata,
    ContentFormat,
    ConversationMetadata,
    Document,
    DocumentType,
    ProjectDetailsMetadata,
    SourceMetadata,
    new_document_id,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def record_pathname(document_id: str) -> str:
    """Blob key of a Document's JSON record."""
    return f"{DOCUMENT_PREFIX}{document_id}.json"


def upload_pathname(source_id: str, file_name: str) -> str:
    """Blob key of an original uploaded file."""
    return f"{UPLOAD_PREFIX}{source_id}/{file_name}"


def vector_metadata(document: Document) -> dict[str, Any]:
    """Metadata stored on a vector record, with the content carried inline."""
    metadata = document.metadata.to_dict()
    metadata["content"] = document.content
    return metadata


class DocumentStore:
    """Explicitly constructed, explicitly initialized document service.

    The in-memory document map is advisory: read operations that need
    freshness reload it from the ``documents/`` blobs before answering.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        blob_store: BlobStore,
        chunker: Chunker | None = None,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.blob_store = blob_store
        self.chunker = chunker or Chunker()
        self._documents: dict[str, Document] = {}
        self.ready = False

    async def initialize(self) -> "DocumentStore":
        """Initialize the embedding provider and load persisted documents.

        Raises:
            EmbeddingError: If the embedding provider cannot be reached.
            StorageError: If the document records cannot be listed.
        """
        if not self.embedder.ready:
            await self.embedder.initialize()
        await self._refresh()
        self.ready = True
        logger.info(f"✅ Document store ready with {len(self._documents)} documents")
        return self

    def _require_ready(self) -> None:
        if not self.ready or not self.embedder.ready:
            raise NotInitializedError("Document store has not been initialized")

    async def _refresh(self) -> None:
        blobs = await self.blob_store.list(DOCUMENT_PREFIX)
        payloads = await asyncio.gather(*(self.blob_store.get(blob.pathname) for blob in blobs))

        documents: dict[str, Document] = {}
        for blob, payload in zip(blobs, payloads):
            if payload is None:
                continue
            try:
                document = Document.from_dict(json.loads(payload))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"⚠️ Skipping unreadable document record {blob.pathname}: {e}")
                continue
            if not document.content:
                logger.warning(f"⚠️ Skipping document {document.id} with no content")
                continue
            documents[document.id] = document

        self._documents = documents
        logger.debug(f"Loaded {len(documents)} documents from blob storage")

    async def _persist(self, document: Document) -> None:
        """Write the record blob, then the vector record.

        A vector failure removes the record blob again so nothing half-written
        stays searchable.
        """
        payload = json.dumps(document.to_dict()).encode("utf-8")
        await self.blob_store.put(
            record_pathname(document.id), payload, content_type="application/json"
        )
        try:
            await self.vector_store.upsert(
                document.id, document.embedding, vector_metadata(document)
            )
        except SourceLensError:
            try:
                await self.blob_store.delete(record_pathname(document.id))
            except StorageError as cleanup_error:
                logger.warning(
                    f"⚠️ Could not remove record blob for {document.id}: {cleanup_error}"
                )
            raise
        self._documents[document.id] = document

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_document(self, content: str, metadata: BaseMetadata) -> Document:
        """Embed ``content`` as a single unit and persist it.

        Args:
            content: Already-extracted text; it is not chunked here
            metadata: Metadata variant for the new Document

        Returns:
            Document: The stored document

        Raises:
            ValidationError: If content is empty.
            EmbeddingError: If embedding generation fails.
            StorageError: If persistence fails.
        """
        self._require_ready()
        if not content or not content.strip():
            raise ValidationError("Document content must not be empty")

        embedding = await self.embedder.embed_one(content)
        document = Document(
            id=new_document_id(metadata.file_name or metadata.type.value),
            content=content,
            embedding=embedding,
            metadata=replace(metadata, score=None),
        )
        await self._persist(document)
        logger.info(f"✅ Stored {document.type.value} document {document.id}")
        return document

    async def ingest_source(
        self,
        text: str,
        metadata: SourceMetadata,
        content_format: ContentFormat = ContentFormat.PLAIN,
        original: bytes | None = None,
        content_type: str = "application/octet-stream",
    ) -> list[Document]:
        """Chunk, embed and store one uploaded source.

        When ``original`` bytes are given they are written under ``uploads/``
        first and every chunk is linked to that blob. A failed original upload
        is logged and the chunks are stored without blob linkage.

        Returns:
            list[Document]: Stored chunk documents; empty when the text has no
                            usable content.

        Raises:
            EmbeddingError: If any chunk fails to embed; nothing is stored.
            StorageError: If a chunk cannot be persisted.
        """
        self._require_ready()
        chunks = self.chunker.split(text, content_format)
        if not chunks:
            logger.warning(f"⚠️ No usable content in {metadata.file_name}")
            return []

        source_id = metadata.source_id or new_document_id(metadata.file_name)
        template = replace(
            metadata,
            source_id=source_id,
            content_format=ContentFormat(content_format),
            total_chunks=len(chunks),
            uploaded_at=metadata.uploaded_at or utc_now_iso(),
            score=None,
        )

        if original is not None:
            pathname = upload_pathname(source_id, metadata.file_name)
            try:
                blob = await self.blob_store.put(pathname, original, content_type=content_type)
                template = replace(template, file_url=blob.url, file_path=pathname, has_blob=True)
                logger.info(f"📦 Stored original {metadata.file_name} at {pathname}")
            except StorageError as e:
                logger.warning(f"⚠️ Original upload failed for {metadata.file_name}: {e}")

        embeddings = await self.embedder.embed(chunks)
        logger.info(f"🧮 Embedded {len(chunks)} chunks from {metadata.file_name}")

        documents = []
        for index, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
            document = Document(
                id=new_document_id(metadata.file_name),
                content=chunk,
                embedding=embedding,
                metadata=replace(template, chunk_index=index),
            )
            await self._persist(document)
            documents.append(document)

        logger.info(f"✅ Ingested {metadata.file_name} as {len(documents)} documents")
        return documents

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search_similar(
        self, query: str, filter_: dict[str, Any] | None = None, top_k: int = DEFAULT_TOP_K
    ) -> list[Document]:
        """Rank filtered documents by cosine similarity to ``query``.

        Returns:
            list[Document]: At most ``top_k`` copies with ``metadata.score``
                            set, best first.

        Raises:
            NotInitializedError: If initialize() has not completed.
            EmbeddingError: If the query cannot be embedded.
        """
        self._require_ready()
        await self._refresh()

        candidates = [doc for doc in self._documents.values() if doc.metadata.matches(filter_)]
        logger.debug(f"Searching {len(candidates)} of {len(self._documents)} documents")
        if not candidates or top_k <= 0:
            return []

        query_vector = await self.embedder.embed_one(query)
        scored = []
        for doc in candidates:
            if len(doc.embedding) != len(query_vector):
                logger.warning(f"⚠️ Skipping {doc.id}: embedding has {len(doc.embedding)} dims")
                continue
            scored.append((cosine_similarity(query_vector, doc.embedding), doc))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            replace(doc, metadata=replace(doc.metadata, score=score))
            for score, doc in scored[:top_k]
        ]

    async def get_documents(self, filter_: dict[str, Any] | None = None) -> list[Document]:
        """Return every document matching ``filter_``, unranked."""
        self._require_ready()
        await self._refresh()
        return [doc for doc in self._documents.values() if doc.metadata.matches(filter_)]

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document's record blob, then its vector record.

        The record blob goes first because it is what makes a document
        visible to reads. When the vector delete fails the record blob is
        written back; if that also fails the reconciler prunes the
        leftover vector record.

        Returns:
            bool: Whether the document was known before the call. Deleting an
                  unknown id again is not an error.

        Raises:
            StorageError: If either remote delete fails; local state is
                          left untouched in that case.
        """
        self._require_ready()
        pathname = record_pathname(document_id)
        payload = await self.blob_store.get(pathname)
        await self.blob_store.delete(pathname)
        try:
            await self.vector_store.delete_by_id(document_id)
        except StorageError:
            if payload is not None:
                await self._restore_record(pathname, payload)
            raise
        existed = self._documents.pop(document_id, None) is not None
        if existed:
            logger.info(f"🗑️ Deleted document {document_id}")
        return existed

    async def _restore_record(self, pathname: str, payload: bytes) -> None:
        try:
            await self.blob_store.put(pathname, payload, content_type="application/json")
        except StorageError as e:
            logger.warning(f"⚠️ Could not restore {pathname}, left for reconciliation: {e}")

    async def delete_documents(self, filter_: dict[str, Any]) -> int:
        """Delete every document matching ``filter_``.

        Individual failures are logged and skipped.

        Returns:
            int: Number of documents actually deleted.
        """
        targets = await self.get_documents(filter_)
        deleted = 0
        for doc in targets:
            try:
                if await self.delete_document(doc.id):
                    deleted += 1
            except StorageError as e:
                logger.warning(f"⚠️ Failed to delete {doc.id}: {e}")
        logger.info(f"🗑️ Deleted {deleted} of {len(targets)} matching documents")
        return deleted

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def list_sources(self) -> list[dict[str, Any]]:
        """Group source chunks into one listing entry per uploaded source.

        Returns:
            list[dict]: ``{id, name, type, url, uploadedAt, chunks}`` entries,
                        newest first.
        """
        docs = await self.get_documents({"type": DocumentType.SOURCE.value})
        sources: dict[str, dict[str, Any]] = {}
        for doc in docs:
            meta = doc.metadata
            source_id = getattr(meta, "source_id", None) or doc.id
            entry = sources.get(source_id)
            if entry is None:
                entry = sources[source_id] = {
                    "id": source_id,
                    "name": meta.file_name,
                    "type": meta.file_type,
                    "url": meta.file_url,
                    "uploadedAt": meta.uploaded_at,
                    "chunks": 0,
                }
            entry["chunks"] += 1
        return sorted(sources.values(), key=lambda s: s["uploadedAt"] or "", reverse=True)

    async def resolve_source(self, identifier: str) -> list[Document]:
        """Find every chunk of the source named by ``identifier``.

        The identifier may be a source id, a chunk document id, a file name,
        an upload pathname or a blob URL.
        """
        docs = await self.get_documents({"type": DocumentType.SOURCE.value})
        if identifier.startswith(UPLOAD_PREFIX):
            parts = identifier[len(UPLOAD_PREFIX) :].split("/", 1)
            source_ids = {parts[0]}
        else:
            source_ids = set()

        for doc in docs:
            meta = doc.metadata
            if identifier in (
                doc.id,
                getattr(meta, "source_id", None),
                meta.file_name,
                meta.file_path,
                meta.file_url,
            ):
                source_ids.add(getattr(meta, "source_id", None) or doc.id)

        return [
            doc
            for doc in docs
            if (getattr(doc.metadata, "source_id", None) or doc.id) in source_ids
        ]

    async def source_status(self, identifier: str) -> dict[str, Any] | None:
        """Report where a source's pieces live: record blobs, vector records, original.

        Returns:
            dict | None: Status summary, or None if no such source is known.
        """
        docs = await self.resolve_source(identifier)
        if not docs:
            return None

        first = docs[0].metadata
        source_id = getattr(first, "source_id", None) or docs[0].id
        neutral = [0.0] * self.vector_store.dimensions
        records = await self.vector_store.query_top_k(
            neutral, max(len(docs), 1) * 2, {"sourceId": source_id}
        )
        blob = await self.blob_store.head(first.file_path) if first.file_path else None
        return {
            "id": source_id,
            "name": first.file_name,
            "chunks": len(docs),
            "vectorRecords": len(records),
            "hasBlob": bool(first.has_blob),
            "blobExists": blob is not None,
            "fileUrl": first.file_url,
            "consistent": len(records) == len(docs) and (blob is not None or not first.has_blob),
        }

    async def delete_source(self, identifier: str) -> int:
        """Delete every chunk of a source, then its original upload.

        Returns:
            int: Number of chunk documents deleted (0 if nothing matched).
        """
        docs = await self.resolve_source(identifier)
        if not docs:
            return 0

        deleted = 0
        for doc in docs:
            try:
                if await self.delete_document(doc.id):
                    deleted += 1
            except StorageError as e:
                logger.warning(f"⚠️ Failed to delete chunk {doc.id}: {e}")

        if deleted == len(docs):
            for pathname in {doc.metadata.file_path for doc in docs if doc.metadata.file_path}:
                try:
                    await self.blob_store.delete(pathname)
                    logger.info(f"🗑️ Deleted original {pathname}")
                except StorageError as e:
                    logger.warning(f"⚠️ Original {pathname} left for reconciliation: {e}")
        return deleted

    # ------------------------------------------------------------------
    # Backup / restore
    # ------------------------------------------------------------------

    async def export_documents(self) -> str:
        """Serialize every document, embeddings included, as a JSON array."""
        docs = await self.get_documents()
        return json.dumps([doc.to_dict() for doc in docs], indent=2)

    async def import_documents(self, json_data: str) -> int:
        """Replace all stored documents with the ones in ``json_data``.

        The payload is validated in full before anything is deleted. Each
        imported document gets a fresh id and keeps its exported id as
        ``importedFrom`` metadata.

        Returns:
            int: Number of documents imported.

        Raises:
            ValidationError: If the payload is not an array of valid documents.
        """
        self._require_ready()
        try:
            raw = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import payload is not valid JSON: {e}") from e
        if not isinstance(raw, list):
            raise ValidationError("Import payload must be a JSON array of documents")

        documents = []
        for i, item in enumerate(raw):
            try:
                document = Document.from_dict(item)
                document.embedding = validate_vector(
                    document.embedding, self.vector_store.dimensions
                )
            except (KeyError, TypeError, ValueError, EmbeddingError) as e:
                raise ValidationError(f"Document {i} is invalid: {e}") from e
            metadata = document.metadata
            metadata.extra["importedFrom"] = document.id
            document.id = new_document_id(metadata.file_name or metadata.type.value)
            documents.append(document)

        await self.delete_documents({})
        for document in documents:
            await self._persist(document)
        await self._refresh()
        logger.info(f"📥 Imported {len(documents)} documents")
        return len(documents)

    # ------------------------------------------------------------------
    # Conversations and project details
    # ------------------------------------------------------------------

    async def store_conversation(self, messages: list[dict]) -> Document:
        """Store a chat transcript as a single ``conversation`` document.

        Raises:
            ValidationError: If ``messages`` is empty or malformed.
        """
        if not isinstance(messages, list) or not messages:
            raise ValidationError("Messages must be a non-empty list")
        lines = []
        for i, message in enumerate(messages):
            if not isinstance(message, dict) or not message.get("role") or "content" not in message:
                raise ValidationError(f"Message {i} must have 'role' and 'content'")
            lines.append(f"{message['role']}: {message['content']}")

        timestamp = utc_now_iso()
        metadata = ConversationMetadata(
            file_name=f"conversation-{timestamp}",
            file_type="conversation",
            uploaded_at=timestamp,
            message_count=len(messages),
        )
        return await self.add_document("\n\n".join(lines), metadata)

    async def save_project_details(self, details: str) -> Document:
        """Replace the stored project description."""
        if not details or not details.strip():
            raise ValidationError("Project details must not be empty")
        await self.delete_documents({"type": DocumentType.PROJECT_DETAILS.value})
        metadata = ProjectDetailsMetadata(file_name=PROJECT_DETAILS_NAME, file_type="text")
        return await self.add_document(details.strip(), metadata)

    async def get_project_details(self) -> str:
        """Return the latest project description, or "" if none was saved."""
        docs = await self.get_documents({"type": DocumentType.PROJECT_DETAILS.value})
        if not docs:
            return ""
        latest = max(docs, key=lambda doc: doc.metadata.uploaded_at or "")
        return latest.content

    # ------------------------------------------------------------------
    # AI memory
    # ------------------------------------------------------------------

    async def store_memory(
        self, kind: str, title: str, content: str, tags: list[str] | None = None
    ) -> Document:
        """Keep an assistant-authored analysis for inclusion in later prompts.

        Raises:
            ValidationError: If ``kind`` is unknown or the content is empty.
        """
        if kind not in MEMORY_KINDS:
            raise ValidationError(f"Unknown memory kind '{kind}'. Expected one of {MEMORY_KINDS}")
        metadata = AIMemoryMetadata(
            file_name=f"memory-{kind}",
            file_type="memory",
            memory_kind=kind,
            title=title,
            tags=list(tags or []),
        )
        return await self.add_document(content, metadata)

    async def query_memory(
        self, query: str, kind: str | None = None, top_k: int = DEFAULT_TOP_K
    ) -> list[Document]:
        """Search stored memories, optionally restricted to one kind."""
        filter_: dict[str, Any] = {"type": DocumentType.AI_MEMORY.value}
        if kind:
            filter_["memoryKind"] = kind
        return await self.search_similar(query, filter_, top_k)


def format_memory_for_prompt(memories: list[Document]) -> str:
    """Render memories newest first as a prompt section, or "" when empty."""
    if not memories:
        return ""

    entries = []
    for memory in sorted(memories, key=lambda m: m.metadata.uploaded_at or "", reverse=True):
        meta = memory.metadata
        lines = [
            f"Type: {getattr(meta, 'memory_kind', 'insight')}",
            f"Title: {getattr(meta, 'title', '')}",
            f"Created: {meta.uploaded_at}",
            "Content:",
            memory.content,
        ]
        tags = getattr(meta, "tags", None)
        if tags:
            lines.append(f"Tags: {', '.join(tags)}")
        entries.append("\n".join(lines))
    return "[AI Previous Analyses]\n" + "\n\n---\n\n".join(entries)
