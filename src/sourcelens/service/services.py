"""Construction of the process-wide service graph.

``create_services`` builds every collaborator explicitly and returns one
handle; surfaces (Flask, CLI, MCP) pass that handle around instead of
reaching for globals inside the services themselves.
"""

import asyncio
import logging
from dataclasses import dataclass

from dotenv import load_dotenv

from sourcelens.constants import get_embedding_dimensions, get_embedding_model
from sourcelens.exceptions import ConfigurationError
from sourcelens.llm.router import ModelRouter
from sourcelens.service.blob_store import BlobStore, S3BlobStore
from sourcelens.service.database import (
    RavenDBConfig,
    RavenVectorStore,
    create_database,
    create_document_store,
    database_exists,
    ensure_index_exists,
)
from sourcelens.service.database.vector_store import VectorStore
from sourcelens.service.document_store import DocumentStore
from sourcelens.service.embeddings import EmbeddingProvider
from sourcelens.service.pipeline import PipelineSettings, RetrievalPipeline
from sourcelens.service.reconciler import Reconciler

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Ready-to-use handles shared by one process."""

    document_store: DocumentStore
    router: ModelRouter
    reconciler: Reconciler

    def pipeline(self, settings: PipelineSettings | None = None) -> RetrievalPipeline:
        """Build a fresh pipeline for one query."""
        return RetrievalPipeline(self.document_store, self.router, settings)


async def build_services(
    router: ModelRouter,
    vector_store: VectorStore,
    blob_store: BlobStore,
    embedding_model: str | None = None,
    verify_dimensions: bool = True,
) -> Services:
    """Wire already-constructed backends together and initialize them."""
    embedder = EmbeddingProvider(
        service=router.service_for(0),
        dimensions=vector_store.dimensions,
        model=embedding_model,
    )
    await embedder.initialize(verify_dimensions=verify_dimensions)
    document_store = DocumentStore(embedder, vector_store, blob_store)
    await document_store.initialize()
    return Services(
        document_store=document_store,
        router=router,
        reconciler=Reconciler(vector_store, blob_store),
    )


async def create_services(
    create_if_missing: bool = False, verify_dimensions: bool = True
) -> Services:
    """Build the full service graph from environment configuration.

    Args:
        create_if_missing: Create the RavenDB database when it does not exist
        verify_dimensions: Embed a test text at startup to validate the embedding dimension

    Raises:
        ConfigurationError: If required configuration is missing or the
                            database does not exist and may not be created.
    """
    logger.info("🔧 Initializing services...")

    # Blob configuration is validated first so a missing bucket fails fast
    blob_store = S3BlobStore.from_env()

    if not await asyncio.to_thread(database_exists):
        if not create_if_missing:
            raise ConfigurationError(
                f"RavenDB database '{RavenDBConfig.get_database_name()}' does not exist"
            )
        logger.info("📦 Creating RavenDB database...")
        await asyncio.to_thread(create_database)

    dimensions = get_embedding_dimensions()
    collection = RavenDBConfig.get_collection()
    raven = await asyncio.to_thread(create_document_store)
    await asyncio.to_thread(ensure_index_exists, raven, collection, dimensions)
    vector_store = RavenVectorStore(raven, collection, dimensions)

    router = ModelRouter.from_env()
    services = await build_services(
        router,
        vector_store,
        blob_store,
        embedding_model=get_embedding_model(router.default.provider),
        verify_dimensions=verify_dimensions,
    )
    logger.info("✅ Services initialized successfully")
    return services
