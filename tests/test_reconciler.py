"""Tests for vector/blob consistency checks and repair."""

import pytest
from fakes import InMemoryVectorStore

from sourcelens.exceptions import StorageError
from sourcelens.service.document_store import record_pathname
from sourcelens.service.models import SourceMetadata
from sourcelens.service.reconciler import (
    MISSING_IN_BLOB,
    MISSING_IN_VECTORS,
    RECORD_MISSING,
    RECORD_ORPHANED,
    Inconsistency,
    Reconciler,
)


async def ingest(store, file_name="a.txt", original=b"original"):
    return await store.ingest_source(
        "Everyone remembered the flood of the spring of 1962.",
        SourceMetadata(file_name=file_name),
        original=original,
    )


class TestCheck:
    """Tests for Reconciler.check."""

    @pytest.mark.asyncio
    async def test_consistent_stores_report_nothing(self, document_store, reconciler):
        await ingest(document_store)
        await document_store.save_project_details("Project details without any upload.")

        assert await reconciler.check() == []

    @pytest.mark.asyncio
    async def test_record_without_original_is_reported(self, document_store, reconciler):
        document = (await ingest(document_store, original=None))[0]

        inconsistencies = await reconciler.check()

        assert len(inconsistencies) == 1
        assert inconsistencies[0].kind == MISSING_IN_BLOB
        assert inconsistencies[0].id == document.id
        assert inconsistencies[0].name == "a.txt"

    @pytest.mark.asyncio
    async def test_unreferenced_blob_is_reported(self, document_store, blob_store, reconciler):
        await blob_store.put("uploads/stray/stray.txt", b"nobody points here")

        inconsistencies = await reconciler.check()

        assert [(item.kind, item.id) for item in inconsistencies] == [
            (MISSING_IN_VECTORS, "uploads/stray/stray.txt")
        ]
        assert inconsistencies[0].name == "stray.txt"

    def test_describe_mentions_both_sides(self):
        missing_blob = Inconsistency(kind=MISSING_IN_BLOB, id="doc-1", name="a.txt", url="s3://b/k")
        missing_vector = Inconsistency(kind=MISSING_IN_VECTORS, id="uploads/x/a.txt")

        assert "doc-1" in missing_blob.describe()
        assert "s3://b/k" in missing_blob.describe()
        assert "not referenced" in missing_vector.describe()


class TestReconcile:
    """Tests for Reconciler.reconcile."""

    @pytest.mark.asyncio
    async def test_prunes_both_sides(self, document_store, blob_store, vector_store, reconciler):
        """Test that orphans on both sides are deleted and counted."""
        kept = (await ingest(document_store, file_name="kept.txt"))[0]
        orphan = (await ingest(document_store, file_name="orphan.txt"))[0]
        await blob_store.delete(orphan.metadata.file_path)
        await blob_store.put("uploads/stray/stray.txt", b"stray")

        report = await reconciler.reconcile()

        assert report.pruned_from_vector_store == 1
        assert report.pruned_from_blob_store == 1
        assert report.failures == []
        assert set(vector_store.records) == {kept.id}
        assert "uploads/stray/stray.txt" not in blob_store.blobs
        assert [doc.id for doc in await document_store.get_documents()] == [kept.id]

    @pytest.mark.asyncio
    async def test_second_run_prunes_nothing(self, document_store, blob_store, reconciler):
        orphan = (await ingest(document_store))[0]
        await blob_store.delete(orphan.metadata.file_path)

        first = await reconciler.reconcile()
        second = await reconciler.reconcile()

        assert first.pruned_from_vector_store == 1
        assert second.pruned_from_vector_store == 0
        assert second.pruned_from_blob_store == 0
        assert second.inconsistencies == []

    @pytest.mark.asyncio
    async def test_failed_delete_is_recorded_and_skipped(
        self, document_store, blob_store, vector_store, reconciler
    ):
        orphan = (await ingest(document_store, original=None))[0]
        vector_store.fail_delete.add(orphan.id)
        await blob_store.put("uploads/stray/stray.txt", b"stray")

        report = await reconciler.reconcile()

        assert report.pruned_from_vector_store == 0
        assert report.pruned_from_blob_store == 1
        assert len(report.failures) == 1
        assert orphan.id in report.failures[0]

    @pytest.mark.asyncio
    async def test_scan_limit_bounds_records_checked(self, blob_store):
        vectors = InMemoryVectorStore()
        for i in range(5):
            await vectors.upsert(f"doc-{i}", [1.0] + [0.0] * 7, {"type": "source"})

        inconsistencies = await Reconciler(vectors, blob_store, scan_limit=3).check()

        assert len(inconsistencies) == 3

    @pytest.mark.asyncio
    async def test_report_serializes_for_the_api(self, document_store, reconciler):
        await ingest(document_store, original=None)

        payload = (await reconciler.reconcile()).to_dict()

        assert payload["prunedFromVectorStore"] == 1
        assert payload["prunedFromBlobStore"] == 0
        assert len(payload["inconsistencies"]) == 1
        assert payload["details"][0]["kind"] == MISSING_IN_BLOB
        assert payload["failures"] == []


class TestRecordLinks:
    """Tests for the link between vector records and document record blobs."""

    @pytest.mark.asyncio
    async def test_failed_record_delete_then_reconcile_keeps_source(
        self, document_store, blob_store, vector_store, reconciler
    ):
        """Test that a refused record-blob delete leaves nothing for the reconciler to prune."""
        document = (await ingest(document_store))[0]
        blob_store.fail_delete.add(record_pathname(document.id))
        with pytest.raises(StorageError):
            await document_store.delete_document(document.id)

        report = await reconciler.reconcile()

        assert report.inconsistencies == []
        assert document.metadata.file_path in blob_store.blobs
        assert document.id in vector_store.records
        assert [doc.id for doc in await document_store.search_similar("flood")] == [document.id]

    @pytest.mark.asyncio
    async def test_vector_record_without_record_blob_is_pruned(
        self, document_store, blob_store, vector_store, reconciler
    ):
        """Test that a leftover vector record and its original go in one pass."""
        document = (await ingest(document_store))[0]
        del blob_store.blobs[record_pathname(document.id)]

        report = await reconciler.reconcile()

        kinds = {item.kind for item in report.inconsistencies}
        assert kinds == {RECORD_MISSING, MISSING_IN_VECTORS}
        assert report.pruned_from_vector_store == 1
        assert report.pruned_from_blob_store == 1
        assert vector_store.records == {}
        assert blob_store.blobs == {}
        assert (await reconciler.reconcile()).inconsistencies == []

    @pytest.mark.asyncio
    async def test_record_blob_without_vector_record_is_pruned(
        self, document_store, blob_store, vector_store, reconciler
    ):
        document = (await ingest(document_store))[0]
        del vector_store.records[document.id]

        report = await reconciler.reconcile()

        orphaned = [item for item in report.inconsistencies if item.kind == RECORD_ORPHANED]
        assert [item.id for item in orphaned] == [record_pathname(document.id)]
        assert orphaned[0].name == document.id
        assert "no vector record" in orphaned[0].describe()
        assert record_pathname(document.id) not in blob_store.blobs
        assert await document_store.get_documents() == []

    @pytest.mark.asyncio
    async def test_full_scan_limit_skips_blob_side_checks(self, blob_store):
        vectors = InMemoryVectorStore()
        await vectors.upsert("doc-0", [1.0] + [0.0] * 7, {"type": "project_details"})
        await blob_store.put(record_pathname("doc-0"), b"{}")
        await blob_store.put(record_pathname("unscanned"), b"{}")
        await blob_store.put("uploads/unscanned/a.txt", b"a")

        inconsistencies = await Reconciler(vectors, blob_store, scan_limit=1).check()

        assert inconsistencies == []
