"""Vector storage backed by RavenDB.

This package provides the vector side of document storage:
- Configuration management (RavenDBConfig)
- Document store creation and index management
- Vector record upsert, filtered top-k query and deletion

Usage:
    from sourcelens.service.database import (
        RavenDBConfig,
        RavenVectorStore,
        create_document_store,
        ensure_index_exists,
    )
"""

# Re-export public API
from sourcelens.service.database.config import RavenDBConfig
from sourcelens.service.database.models import VectorMatch, VectorRecord
from sourcelens.service.database.operations import (
    build_index_definition,
    create_database,
    create_document_store,
    database_exists,
    ensure_index_exists,
    index_name_for,
)
from sourcelens.service.database.utils import cosine_similarity
from sourcelens.service.database.vector_store import RavenVectorStore, VectorStore

__all__ = [
    # Config
    "RavenDBConfig",
    # Models
    "VectorMatch",
    "VectorRecord",
    # Operations
    "create_document_store",
    "build_index_definition",
    "ensure_index_exists",
    "index_name_for",
    "database_exists",
    "create_database",
    # Store
    "RavenVectorStore",
    "VectorStore",
    # Utils
    "cosine_similarity",
]
