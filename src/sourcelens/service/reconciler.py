"""Consistency repair between the vector store and blob storage.

Two links are checked. Every vector record must have its JSON record blob
under ``documents/`` and every record blob must have its vector record. On
top of that a source vector record is linked to its original upload only
through the ``fileUrl`` metadata field. Records whose ``fileUrl`` is missing
or points at no live blob are orphans, and so are upload blobs no record
points at.
"""

import logging
from dataclasses import asdict, dataclass, field

from sourcelens.constants import DOCUMENT_PREFIX, RECONCILE_SCAN_LIMIT, UPLOAD_PREFIX
from sourcelens.exceptions import StorageError
from sourcelens.service.blob_store import BlobStore
from sourcelens.service.database.vector_store import VectorStore
from sourcelens.service.document_store import record_pathname
from sourcelens.service.models import DocumentType

logger = logging.getLogger(__name__)

MISSING_IN_BLOB = "missing_in_blob"
MISSING_IN_VECTORS = "missing_in_vectors"
RECORD_MISSING = "record_missing"
RECORD_ORPHANED = "record_orphaned"


@dataclass
class Inconsistency:
    """One side of a link between a vector record and a blob is missing.

    Attributes:
        kind: MISSING_IN_BLOB for a source vector record without a live
              original, MISSING_IN_VECTORS for an upload blob no record
              references, RECORD_MISSING for a vector record without its
              record blob, RECORD_ORPHANED for a record blob without its
              vector record
        id: Vector record id, or the blob pathname for the blob-side kinds
        name: File name when known
        url: The dangling ``fileUrl`` or the unreferenced blob URL
    """

    kind: str
    id: str
    name: str | None = None
    url: str | None = None

    def describe(self) -> str:
        if self.kind == MISSING_IN_BLOB:
            target = self.url or "no file URL"
            return f"Vector record {self.id} ({self.name or 'unknown'}) points at missing blob: {target}"
        if self.kind == RECORD_MISSING:
            return f"Vector record {self.id} ({self.name or 'unknown'}) has no document record blob"
        if self.kind == RECORD_ORPHANED:
            return f"Document record {self.id} has no vector record"
        return f"Blob {self.id} is not referenced by any vector record"

    @property
    def prunes_vector(self) -> bool:
        return self.kind in (MISSING_IN_BLOB, RECORD_MISSING)


@dataclass
class ReconcileReport:
    pruned_from_vector_store: int = 0
    pruned_from_blob_store: int = 0
    inconsistencies: list[Inconsistency] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "prunedFromVectorStore": self.pruned_from_vector_store,
            "prunedFromBlobStore": self.pruned_from_blob_store,
            "inconsistencies": [item.describe() for item in self.inconsistencies],
            "details": [asdict(item) for item in self.inconsistencies],
            "failures": list(self.failures),
        }


class Reconciler:
    """Find and remove orphans on both sides of the vector/blob links.

    Runs only when called; reads never trigger it. Deletions are
    best-effort and a second run with no intervening writes prunes nothing.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        blob_store: BlobStore,
        scan_limit: int = RECONCILE_SCAN_LIMIT,
    ) -> None:
        self.vector_store = vector_store
        self.blob_store = blob_store
        self.scan_limit = scan_limit

    async def check(self) -> list[Inconsistency]:
        """List orphans on both sides without deleting anything.

        Blob-side orphans are only reported when the vector scan came back
        below ``scan_limit``; otherwise an unscanned record may still
        reference them.
        """
        neutral = [0.0] * self.vector_store.dimensions
        records = await self.vector_store.query_top_k(neutral, self.scan_limit)
        uploads = await self.blob_store.list(UPLOAD_PREFIX)
        record_blobs = await self.blob_store.list(DOCUMENT_PREFIX)
        logger.info(
            f"🔎 Checking {len(records)} vector records against {len(record_blobs)} "
            f"document records and {len(uploads)} uploads"
        )

        upload_urls = {blob.url for blob in uploads}
        record_paths = {blob.pathname for blob in record_blobs}

        inconsistencies = []
        for record in records:
            metadata = record.metadata
            file_url = metadata.get("fileUrl")
            if metadata.get("type") == DocumentType.SOURCE.value and (
                not file_url or file_url not in upload_urls
            ):
                kind = MISSING_IN_BLOB
            elif record_pathname(record.id) not in record_paths:
                kind = RECORD_MISSING
            else:
                continue
            inconsistencies.append(
                Inconsistency(kind=kind, id=record.id, name=metadata.get("fileName"), url=file_url)
            )

        if len(records) >= self.scan_limit:
            logger.warning(
                f"⚠️ Vector scan hit the limit of {self.scan_limit}; skipping blob-side checks"
            )
            return inconsistencies

        pruned = {item.id for item in inconsistencies}
        known_paths = {record_pathname(record.id) for record in records}
        referenced = {
            record.metadata.get("fileUrl") for record in records if record.id not in pruned
        }

        inconsistencies.extend(
            Inconsistency(
                kind=RECORD_ORPHANED,
                id=blob.pathname,
                name=blob.pathname[len(DOCUMENT_PREFIX) :].removesuffix(".json"),
                url=blob.url,
            )
            for blob in record_blobs
            if blob.pathname not in known_paths
        )
        inconsistencies.extend(
            Inconsistency(
                kind=MISSING_IN_VECTORS,
                id=blob.pathname,
                name=blob.pathname.rsplit("/", 1)[-1],
                url=blob.url,
            )
            for blob in uploads
            if blob.url not in referenced
        )
        return inconsistencies

    async def reconcile(self) -> ReconcileReport:
        """Delete every orphan found by check().

        Individual delete failures are logged, recorded in ``failures`` and
        skipped; counts reflect only deletions that succeeded.
        """
        report = ReconcileReport(inconsistencies=await self.check())

        for item in report.inconsistencies:
            try:
                if item.prunes_vector:
                    await self.vector_store.delete_by_id(item.id)
                    report.pruned_from_vector_store += 1
                    if item.kind == MISSING_IN_BLOB:
                        await self._delete_record_blob(item.id, report)
                else:
                    await self.blob_store.delete(item.id)
                    report.pruned_from_blob_store += 1
            except StorageError as e:
                logger.warning(f"⚠️ Could not prune {item.id}: {e}")
                report.failures.append(f"{item.id}: {e}")

        logger.info(
            f"🧹 Reconciled: {report.pruned_from_vector_store} vector records and "
            f"{report.pruned_from_blob_store} blobs pruned, {len(report.failures)} failures"
        )
        return report

    async def _delete_record_blob(self, document_id: str, report: ReconcileReport) -> None:
        try:
            await self.blob_store.delete(record_pathname(document_id))
        except StorageError as e:
            logger.warning(f"⚠️ Record blob for {document_id} left behind: {e}")
            report.failures.append(f"{record_pathname(document_id)}: {e}")
