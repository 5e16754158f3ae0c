"""RavenDB connection, database provisioning and vector index setup."""

import logging

import requests
from ravendb import DocumentStore
from ravendb.documents.indexes.definitions import (
    FieldIndexing,
    FieldStorage,
    IndexDefinition,
    IndexFieldOptions,
)
from ravendb.documents.indexes.vector.options import VectorOptions
from ravendb.documents.operations.indexes import GetIndexNamesOperation, PutIndexesOperation

from sourcelens.constants import get_embedding_dimensions
from sourcelens.service.database.config import RavenDBConfig

logger = logging.getLogger(__name__)

# Map over vector records; only the embedding is stored as a vector field
_INDEX_MAP = """from record in docs.{collection}
where record.embedding != null
select new {{
    record_id = record.record_id,
    type = record.metadata.type,
    fileName = record.metadata.fileName,
    embedding = CreateField("embedding", record.embedding, new CreateFieldOptions {{ Storage = FieldStorage.Yes, Indexing = FieldIndexing.No }})
}}"""


def _resolve(url: str | None, database: str | None) -> tuple[str, str]:
    return url or RavenDBConfig.get_url(), database or RavenDBConfig.get_database_name()


def create_document_store(url: str | None = None, database: str | None = None) -> DocumentStore:
    """Open an initialized DocumentStore for the configured server and database.

    Args:
        url: RavenDB server URL (default: RAVENDB_URL)
        database: Database name (default: RAVENDB_DATABASE)
    """
    url, database = _resolve(url, database)
    store = DocumentStore([url], database)
    store.initialize()
    logger.debug(f"Connected to RavenDB database '{database}' at {url}")
    return store


def index_name_for(collection: str) -> str:
    return f"{collection}/ByEmbedding"


def build_index_definition(collection: str, dimensions: int) -> IndexDefinition:
    definition = IndexDefinition()
    definition.name = index_name_for(collection)
    definition.maps = {_INDEX_MAP.format(collection=collection)}
    definition.fields = {
        "embedding": IndexFieldOptions(
            storage=FieldStorage.YES,
            indexing=FieldIndexing.NO,
            vector=VectorOptions(dimensions=dimensions),
        )
    }
    return definition


def ensure_index_exists(
    store: DocumentStore, collection: str | None = None, dimensions: int | None = None
) -> None:
    """Create the vector index over a collection unless it is already deployed.

    Args:
        store: Initialized DocumentStore instance
        collection: Collection holding vector records (default: RAVENDB_COLLECTION)
        dimensions: Embedding dimension (default: EMBEDDING_DIMENSIONS)
    """
    collection = collection or RavenDBConfig.get_collection()
    dimensions = dimensions or get_embedding_dimensions()
    index_name = index_name_for(collection)

    if index_name in store.maintenance.send(GetIndexNamesOperation(0, 100)):
        return

    store.maintenance.send(PutIndexesOperation(build_index_definition(collection, dimensions)))
    logger.info(f"📇 Created vector index {index_name} ({dimensions} dimensions)")


def database_exists(url: str | None = None, database: str | None = None) -> bool:
    """Check for the database with an empty query.

    Returns:
        bool: False when the server rejects the query for any reason
    """
    url, database = _resolve(url, database)
    try:
        store = DocumentStore([url], database)
        store.initialize()
        try:
            with store.open_session() as session:
                list(session.query().take(0))
        finally:
            store.close()
    except Exception as e:
        logger.debug(f"Database '{database}' check failed: {e}")
        return False
    return True


def create_database(url: str | None = None, database: str | None = None) -> None:
    """Create an empty database through the server admin endpoint.

    Raises:
        requests.HTTPError: If the server refuses the request.
    """
    url, database = _resolve(url, database)
    response = requests.put(
        f"{url}/admin/databases",
        json={"DatabaseName": database, "Settings": {}, "Disabled": False},
        timeout=30,
    )
    response.raise_for_status()
    logger.info(f"📦 Created RavenDB database '{database}'")
