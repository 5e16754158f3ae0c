"""Tests for DocumentStore: ingestion, search, deletion and record types."""

import json

import pytest
from fakes import TEST_DIMENSIONS, FakeLLMService

from sourcelens.exceptions import (
    EmbeddingError,
    NotInitializedError,
    StorageError,
    ValidationError,
)
from sourcelens.service.chunking import Chunker
from sourcelens.service.document_store import (
    DocumentStore,
    format_memory_for_prompt,
    record_pathname,
    upload_pathname,
)
from sourcelens.service.embeddings import EmbeddingProvider
from sourcelens.service.models import (
    ContentFormat,
    DocumentType,
    ProjectDetailsMetadata,
    SourceMetadata,
)

PARAGRAPHS = [f"Paragraph {i} talks about the river crossing in detail." for i in range(6)]


async def ingest(store, file_name="a.txt", text=None, original=b"original bytes", **metadata):
    return await store.ingest_source(
        text or "The harvest festival was the best day of every year.",
        SourceMetadata(file_name=file_name, **metadata),
        original=original,
        content_type="text/plain",
    )


class TestInitialization:
    """Tests for the explicit initialization step."""

    @pytest.mark.asyncio
    async def test_operations_before_initialize_raise(self, embedder, vector_store, blob_store):
        store = DocumentStore(embedder, vector_store, blob_store)

        with pytest.raises(NotInitializedError):
            await store.search_similar("anything")
        with pytest.raises(NotInitializedError):
            await store.add_document("text", ProjectDetailsMetadata())

    @pytest.mark.asyncio
    async def test_initialize_loads_persisted_records(self, document_store, embedder, vector_store, blob_store):
        """Test that a fresh store sees documents written by another instance."""
        stored = await ingest(document_store)

        reopened = await DocumentStore(embedder, vector_store, blob_store).initialize()
        docs = await reopened.get_documents()

        assert [doc.id for doc in docs] == [stored[0].id]
        assert docs[0].content == stored[0].content

    @pytest.mark.asyncio
    async def test_unreadable_records_are_skipped(self, document_store, blob_store):
        await ingest(document_store)
        await blob_store.put("documents/broken.json", b"{not json")
        await blob_store.put(
            "documents/empty.json",
            json.dumps({"id": "empty", "content": "", "embedding": [], "metadata": {}}).encode(),
        )

        docs = await document_store.get_documents()

        assert len(docs) == 1


class TestIngestion:
    """Tests for ingest_source and add_document."""

    @pytest.mark.asyncio
    async def test_ingest_stores_record_vector_and_original(
        self, document_store, blob_store, vector_store
    ):
        """Test that one small upload becomes one searchable, blob-linked chunk."""
        documents = await ingest(document_store)

        assert len(documents) == 1
        document = documents[0]
        meta = document.metadata
        pathname = upload_pathname(meta.source_id, "a.txt")
        assert meta.has_blob is True
        assert meta.file_path == pathname
        assert meta.file_url == blob_store.url_for(pathname)
        assert blob_store.blobs[pathname] == b"original bytes"
        assert record_pathname(document.id) in blob_store.blobs
        assert vector_store.records[document.id][1]["fileUrl"] == meta.file_url
        assert vector_store.records[document.id][1]["content"] == document.content

        hits = await document_store.search_similar("harvest festival", {"type": "source"})
        assert hits[0].id == document.id
        assert hits[0].metadata.score is not None

    @pytest.mark.asyncio
    async def test_ingest_tags_chunks_in_order(self, embedder, vector_store, blob_store):
        store = await DocumentStore(
            embedder, vector_store, blob_store, chunker=Chunker(max_tokens=30)
        ).initialize()

        documents = await ingest(store, text="\n\n".join(PARAGRAPHS))

        assert len(documents) > 1
        assert [doc.metadata.chunk_index for doc in documents] == list(range(len(documents)))
        assert {doc.metadata.total_chunks for doc in documents} == {len(documents)}
        assert len({doc.metadata.source_id for doc in documents}) == 1
        assert len({doc.id for doc in documents}) == len(documents)

    @pytest.mark.asyncio
    async def test_transcript_chunks_keep_content_format(self, document_store):
        raw = json.dumps([{"content": "We crossed the river before dawn that day."}])

        documents = await document_store.ingest_source(
            raw, SourceMetadata(file_name="t.json"), content_format=ContentFormat.TRANSCRIPT
        )

        assert documents[0].content == "We crossed the river before dawn that day."
        assert documents[0].metadata.content_format is ContentFormat.TRANSCRIPT

    @pytest.mark.asyncio
    async def test_text_without_usable_content_stores_nothing(self, document_store, blob_store):
        documents = await ingest(document_store, text="   hi   ")

        assert documents == []
        assert blob_store.blobs == {}

    @pytest.mark.asyncio
    async def test_failed_original_upload_is_tolerated(self, document_store, blob_store):
        """Test that chunks are stored without blob linkage when the original fails."""
        blob_store.fail_put_prefixes.add("uploads/")

        documents = await ingest(document_store)

        assert len(documents) == 1
        assert documents[0].metadata.has_blob is False
        assert documents[0].metadata.file_url is None

    @pytest.mark.asyncio
    async def test_wrong_dimension_provider_stores_nothing(self, vector_store, blob_store):
        """Test that a provider returning the wrong dimension leaves no records."""
        service = FakeLLMService()
        embedder = await EmbeddingProvider(service, TEST_DIMENSIONS).initialize(verify_dimensions=False)
        store = await DocumentStore(embedder, vector_store, blob_store).initialize()
        service.embedding_override = lambda texts: [[0.5] * (TEST_DIMENSIONS - 1) for _ in texts]

        with pytest.raises(EmbeddingError):
            await ingest(store, original=None)

        assert vector_store.records == {}
        assert await blob_store.list("documents/") == []

    @pytest.mark.asyncio
    async def test_vector_failure_removes_record_blob(self, document_store, vector_store, blob_store):
        """Test that a failed vector write does not leave a searchable record."""
        vector_store.fail_upsert = True

        with pytest.raises(StorageError):
            await document_store.add_document("Some project text here.", ProjectDetailsMetadata())

        assert await blob_store.list("documents/") == []
        assert await document_store.get_documents() == []

    @pytest.mark.asyncio
    async def test_add_document_rejects_empty_content(self, document_store):
        with pytest.raises(ValidationError):
            await document_store.add_document("   ", ProjectDetailsMetadata())


class TestSearch:
    """Tests for search_similar."""

    @pytest.mark.asyncio
    async def test_empty_store_returns_no_results(self, document_store):
        assert await document_store.search_similar("anything") == []

    @pytest.mark.asyncio
    async def test_results_are_ranked_and_limited(self, document_store):
        """Test that results come back best first and never exceed top_k."""
        texts = [
            "The harvest festival was the best day of every year.",
            "Stock prices fell sharply during the autumn of that year.",
            "Grandmother baked bread for the harvest festival crowd.",
            "The train schedule changed twice during the winter months.",
        ]
        for i, text in enumerate(texts):
            await ingest(document_store, file_name=f"{i}.txt", text=text, original=None)

        hits = await document_store.search_similar(texts[0], {"type": "source"}, top_k=3)

        assert len(hits) == 3
        assert hits[0].content == texts[0]
        assert hits[0].metadata.score == pytest.approx(1.0)
        scores = [hit.metadata.score for hit in hits]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_filter_restricts_candidates(self, document_store):
        await ingest(document_store, original=None)
        await document_store.save_project_details("The harvest festival documentary project.")

        hits = await document_store.search_similar(
            "harvest festival", {"type": DocumentType.PROJECT_DETAILS}
        )

        assert [hit.type for hit in hits] == [DocumentType.PROJECT_DETAILS]

    @pytest.mark.asyncio
    async def test_scores_are_not_persisted(self, document_store, blob_store):
        documents = await ingest(document_store, original=None)
        await document_store.search_similar("harvest")

        record = json.loads(blob_store.blobs[record_pathname(documents[0].id)])

        assert "score" not in record["metadata"]


class TestDeletion:
    """Tests for delete_document and delete_documents."""

    @pytest.mark.asyncio
    async def test_delete_reports_existence_once(self, document_store, vector_store, blob_store):
        """Test that deleting twice succeeds both times but reports False the second time."""
        document = (await ingest(document_store, original=None))[0]

        assert await document_store.delete_document(document.id) is True
        assert await document_store.delete_document(document.id) is False
        assert document.id not in vector_store.records
        assert record_pathname(document.id) not in blob_store.blobs
        assert await document_store.search_similar("harvest") == []

    @pytest.mark.asyncio
    async def test_failed_remote_delete_keeps_document(self, document_store, vector_store, blob_store):
        """Test that a failed vector delete writes the record blob back."""
        document = (await ingest(document_store, original=None))[0]
        vector_store.fail_delete.add(document.id)

        with pytest.raises(StorageError):
            await document_store.delete_document(document.id)

        assert len(await document_store.get_documents()) == 1
        assert record_pathname(document.id) in blob_store.blobs
        assert document.id in vector_store.records

    @pytest.mark.asyncio
    async def test_failed_record_delete_leaves_both_stores_intact(
        self, document_store, vector_store, blob_store
    ):
        """Test that the vector record is untouched when the record blob cannot be deleted."""
        document = (await ingest(document_store))[0]
        blob_store.fail_delete.add(record_pathname(document.id))

        with pytest.raises(StorageError):
            await document_store.delete_document(document.id)

        assert document.id in vector_store.records
        assert [doc.id for doc in await document_store.search_similar("harvest")] == [document.id]

    @pytest.mark.asyncio
    async def test_delete_documents_skips_failures(self, document_store, vector_store):
        kept = (await ingest(document_store, file_name="kept.txt", original=None))[0]
        await ingest(document_store, file_name="gone.txt", original=None)
        vector_store.fail_delete.add(kept.id)

        deleted = await document_store.delete_documents({"type": "source"})

        assert deleted == 1
        assert [doc.id for doc in await document_store.get_documents()] == [kept.id]


class TestSources:
    """Tests for source listing, resolution, status and deletion."""

    @pytest.mark.asyncio
    async def test_list_sources_groups_chunks_newest_first(self, embedder, vector_store, blob_store):
        store = await DocumentStore(
            embedder, vector_store, blob_store, chunker=Chunker(max_tokens=30)
        ).initialize()
        older = await ingest(
            store, file_name="old.txt", text="\n\n".join(PARAGRAPHS), uploaded_at="2024-01-01T00:00:00+00:00"
        )
        await ingest(store, file_name="new.txt", uploaded_at="2025-01-01T00:00:00+00:00")

        sources = await store.list_sources()

        assert [entry["name"] for entry in sources] == ["new.txt", "old.txt"]
        assert sources[1]["chunks"] == len(older)
        assert sources[1]["id"] == older[0].metadata.source_id
        assert sources[1]["url"] == older[0].metadata.file_url

    @pytest.mark.asyncio
    async def test_resolve_source_accepts_several_identifiers(self, document_store):
        document = (await ingest(document_store))[0]
        meta = document.metadata

        for identifier in (meta.source_id, document.id, "a.txt", meta.file_path, meta.file_url):
            resolved = await document_store.resolve_source(identifier)
            assert [doc.id for doc in resolved] == [document.id]

        assert await document_store.resolve_source("missing.txt") == []

    @pytest.mark.asyncio
    async def test_source_status_reports_consistency(self, document_store, blob_store):
        document = (await ingest(document_store))[0]
        source_id = document.metadata.source_id

        status = await document_store.source_status(source_id)
        assert status["consistent"] is True
        assert status["vectorRecords"] == 1
        assert status["blobExists"] is True

        await blob_store.delete(document.metadata.file_path)
        status = await document_store.source_status(source_id)
        assert status["blobExists"] is False
        assert status["consistent"] is False

        assert await document_store.source_status("unknown") is None

    @pytest.mark.asyncio
    async def test_delete_source_removes_chunks_and_original(self, document_store, blob_store):
        document = (await ingest(document_store))[0]

        deleted = await document_store.delete_source(document.metadata.source_id)

        assert deleted == 1
        assert blob_store.blobs == {}
        assert await document_store.list_sources() == []
        assert await document_store.delete_source(document.metadata.source_id) == 0


class TestBackup:
    """Tests for export_documents and import_documents."""

    @pytest.mark.asyncio
    async def test_import_replaces_existing_documents(self, document_store):
        original = (await ingest(document_store, original=None))[0]
        exported = await document_store.export_documents()
        await ingest(document_store, file_name="later.txt", original=None)

        count = await document_store.import_documents(exported)

        docs = await document_store.get_documents()
        assert count == 1
        assert len(docs) == 1
        assert docs[0].content == original.content
        assert docs[0].embedding == original.embedding

    @pytest.mark.asyncio
    async def test_import_assigns_fresh_ids(self, document_store, vector_store, blob_store):
        """Test that restored documents never reuse the ids deleted by the import."""
        original = (await ingest(document_store, original=None))[0]

        await document_store.import_documents(await document_store.export_documents())

        restored = (await document_store.get_documents())[0]
        assert restored.id != original.id
        assert restored.metadata.extra["importedFrom"] == original.id
        assert set(vector_store.records) == {restored.id}
        assert record_pathname(original.id) not in blob_store.blobs

    @pytest.mark.asyncio
    async def test_invalid_import_changes_nothing(self, document_store):
        """Test that a bad payload is rejected before anything is deleted."""
        await ingest(document_store, original=None)
        bad = json.dumps([{"id": "x", "content": "text", "embedding": [1.0], "metadata": {}}])

        with pytest.raises(ValidationError):
            await document_store.import_documents(bad)
        with pytest.raises(ValidationError):
            await document_store.import_documents("not json")
        with pytest.raises(ValidationError):
            await document_store.import_documents(json.dumps({"id": "x"}))

        assert len(await document_store.get_documents()) == 1


class TestRecordTypes:
    """Tests for conversations, project details and AI memory."""

    @pytest.mark.asyncio
    async def test_store_conversation_flattens_messages(self, document_store):
        document = await document_store.store_conversation(
            [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        )

        assert document.content == "user: hi\n\nassistant: hello"
        assert document.type is DocumentType.CONVERSATION
        assert document.metadata.message_count == 2

    @pytest.mark.asyncio
    async def test_store_conversation_rejects_malformed_messages(self, document_store):
        with pytest.raises(ValidationError):
            await document_store.store_conversation([])
        with pytest.raises(ValidationError):
            await document_store.store_conversation([{"content": "no role"}])

    @pytest.mark.asyncio
    async def test_project_details_are_replaced(self, document_store):
        assert await document_store.get_project_details() == ""

        await document_store.save_project_details("First description of the film.")
        await document_store.save_project_details("  Second description of the film.  ")

        assert await document_store.get_project_details() == "Second description of the film."
        docs = await document_store.get_documents({"type": "project_details"})
        assert len(docs) == 1

    @pytest.mark.asyncio
    async def test_memory_is_filtered_by_kind(self, document_store):
        await document_store.store_memory("timeline", "Early years", "Born 1950, moved in 1962.")
        await document_store.store_memory("insight", "Tone", "Interviews are nostalgic.", ["tone"])

        timeline = await document_store.query_memory("moved", kind="timeline")
        everything = await document_store.query_memory("moved")

        assert [doc.metadata.title for doc in timeline] == ["Early years"]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_unknown_memory_kind_is_rejected(self, document_store):
        with pytest.raises(ValidationError, match="Unknown memory kind"):
            await document_store.store_memory("gossip", "t", "content")

    @pytest.mark.asyncio
    async def test_format_memory_for_prompt(self, document_store):
        memory = await document_store.store_memory(
            "insight", "Tone", "Interviews are nostalgic.", ["tone", "mood"]
        )

        text = format_memory_for_prompt([memory])

        assert text.startswith("[AI Previous Analyses]\n")
        assert "Title: Tone" in text
        assert "Tags: tone, mood" in text
        assert format_memory_for_prompt([]) == ""
