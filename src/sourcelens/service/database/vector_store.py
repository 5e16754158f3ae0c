"""RavenDB-backed vector store: upsert, filtered top-k query and deletion."""

import asyncio
import logging
from typing import Any, Protocol

from ravendb import DocumentStore

from sourcelens.exceptions import StorageError
from sourcelens.service.database.models import VectorMatch, VectorRecord
from sourcelens.service.database.utils import cosine_similarity
from sourcelens.service.embeddings import validate_vector
from sourcelens.service.models import matches_filter, normalize_value

logger = logging.getLogger(__name__)


class VectorStore(Protocol):
    """Operations the document store and reconciler need from a vector backend."""

    dimensions: int

    async def upsert(self, record_id: str, vector: list[float], metadata: dict[str, Any]) -> None: ...

    async def query_top_k(
        self, vector: list[float], k: int, filter_: dict[str, Any] | None = None
    ) -> list[VectorMatch]: ...

    async def delete_by_id(self, record_id: str) -> None: ...

    async def delete_many(self, record_ids: list[str]) -> None: ...


class RavenVectorStore:
    """Vector records kept in one RavenDB collection.

    Queries filter on ``metadata.<key>`` fields server side and rank with
    RavenDB's vector search. Ties come back in whatever order the server
    produced them. All RavenDB calls run in a worker thread so callers can
    await them.
    """

    def __init__(self, store: DocumentStore, collection: str, dimensions: int) -> None:
        self.store = store
        self.collection = collection
        self.dimensions = dimensions

    async def upsert(self, record_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        """Insert or replace a record.

        Raises:
            EmbeddingError: If the vector does not match the index dimension.
            StorageError: If RavenDB rejects the write.
        """
        vector = validate_vector(vector, self.dimensions)
        try:
            await asyncio.to_thread(self._upsert_sync, record_id, vector, metadata)
        except Exception as e:
            logger.error(f"❌ Vector upsert failed for {record_id}: {e}", exc_info=True)
            raise StorageError(f"Vector upsert failed for {record_id}: {e}") from e

    def _upsert_sync(self, record_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        with self.store.open_session() as session:
            record = VectorRecord(
                Id=record_id, record_id=record_id, embedding=vector, metadata=dict(metadata)
            )
            session.store(record, record_id)
            session.advanced.get_metadata_for(record)["@collection"] = self.collection
            session.save_changes()

    async def query_top_k(
        self, vector: list[float], k: int, filter_: dict[str, Any] | None = None
    ) -> list[VectorMatch]:
        """Return at most ``k`` records matching ``filter_``, best score first.

        A non-zero vector runs a vector search ordered by score. A zero
        vector skips it, which turns the call into a bounded listing where
        every record scores 0.0.
        """
        if k <= 0:
            return []
        try:
            rows = await asyncio.to_thread(self._query_sync, vector, k, filter_)
        except Exception as e:
            logger.error(f"❌ Vector query failed: {e}", exc_info=True)
            raise StorageError(f"Vector query failed: {e}") from e

        matches = []
        for row in rows:
            metadata = row.get("metadata") or {}
            if not matches_filter(metadata, filter_):
                continue
            embedding = row.get("embedding") or []
            if len(embedding) != len(vector):
                logger.warning(
                    f"⚠️ Skipping record {self._row_id(row)} with {len(embedding)}-dim embedding"
                )
                continue
            matches.append(
                VectorMatch(id=self._row_id(row), score=self._score(row, vector), metadata=metadata)
            )

        matches.sort(key=lambda match: match.score, reverse=True)
        return matches[:k]

    def _query_sync(
        self, vector: list[float], k: int, filter_: dict[str, Any] | None
    ) -> list[dict]:
        with self.store.open_session() as session:
            query = session.query_collection(self.collection, object_type=dict)
            for i, (key, value) in enumerate((filter_ or {}).items()):
                if i:
                    query = query.and_also()
                query = query.where_equals(f"metadata.{key}", normalize_value(value))
            if any(vector):
                if filter_:
                    query = query.and_also()
                query = query.vector_search("embedding", vector).order_by_score()
            return list(query.take(k))

    @staticmethod
    def _score(row: dict, vector: list[float]) -> float:
        """Use the server's @index-score, computing cosine when it is absent."""
        index_score = row.get("@metadata", {}).get("@index-score")
        if index_score is not None:
            return float(index_score)
        return cosine_similarity(vector, row.get("embedding") or [])

    @staticmethod
    def _row_id(row: dict) -> str:
        return row.get("record_id") or row.get("@metadata", {}).get("@id", "")

    async def delete_by_id(self, record_id: str) -> None:
        """Delete one record; deleting a missing id is not an error.

        Raises:
            StorageError: If RavenDB rejects the delete.
        """
        try:
            await asyncio.to_thread(self._delete_sync, [record_id])
        except Exception as e:
            logger.error(f"❌ Vector delete failed for {record_id}: {e}", exc_info=True)
            raise StorageError(f"Vector delete failed for {record_id}: {e}") from e

    async def delete_many(self, record_ids: list[str]) -> None:
        """Delete several records in one session."""
        if not record_ids:
            return
        try:
            await asyncio.to_thread(self._delete_sync, list(record_ids))
        except Exception as e:
            logger.error(f"❌ Vector bulk delete failed: {e}", exc_info=True)
            raise StorageError(f"Vector bulk delete failed: {e}") from e

    def _delete_sync(self, record_ids: list[str]) -> None:
        with self.store.open_session() as session:
            for record_id in record_ids:
                session.delete(record_id)
            session.save_changes()

    async def count(self) -> int:
        return await asyncio.to_thread(self._count_sync)

    def _count_sync(self) -> int:
        with self.store.open_session() as session:
            return session.query_collection(self.collection, object_type=dict).count()
