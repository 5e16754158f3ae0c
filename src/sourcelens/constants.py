"""Application-wide constants and defaults for SourceLens.

This module provides a single source of truth for configuration defaults,
magic numbers, and other constants used throughout the application.
"""

import os

# =============================================================================
# Upload Limits
# =============================================================================
MAX_UPLOAD_SIZE_BYTES = 100 * 1024 * 1024  # 100MB per file
MAX_UPLOAD_FILES = 50  # Files per upload batch

# =============================================================================
# Chunking
# =============================================================================
CHARS_PER_TOKEN = 4  # Fixed token estimation heuristic
MAX_TOKENS_PER_CHUNK = 1000
MAX_CHUNK_CHARS = CHARS_PER_TOKEN * MAX_TOKENS_PER_CHUNK
MIN_CHUNK_LENGTH = 20  # Chunks shorter than this are discarded as noise
INAUDIBLE_MARKERS = ("[inaudible]", "(inaudible)", "[crosstalk]")

# =============================================================================
# Embeddings
# =============================================================================
EMBEDDING_BATCH_SIZE = 10
EMBEDDING_DEFAULTS = {
    "ollama": "mxbai-embed-large",
    "gemini": "gemini-embedding-001",
}
DEFAULT_EMBEDDING_DIMENSIONS = 1024

# =============================================================================
# Retrieval & Synthesis
# =============================================================================
DEFAULT_TOP_K = 5
PIPELINE_TOP_K = 20  # Candidate chunks retrieved per chat query
BATCH_CHAR_BUDGET = 10000  # Characters per analysis batch
MAX_BATCHES = 3  # Doubled for overview-style queries
ROUTING_THRESHOLD_TOKENS = 30000
DEFAULT_TEMPERATURE = 0.58
DEFAULT_MAX_TOKENS = 2000
OVERVIEW_KEYWORDS = ("summary", "overview", "all", "everything", "timeline", "chronological")
NO_SOURCES_MESSAGE = (
    "No relevant sources were found for this question. "
    "Upload documents or rephrase the query."
)
MEMORY_KINDS = ("character_brief", "relationship_map", "timeline", "insight", "analysis")
PROJECT_DETAILS_NAME = "project-details"

# =============================================================================
# Storage Layout
# =============================================================================
DOCUMENT_PREFIX = "documents/"
UPLOAD_PREFIX = "uploads/"
RECONCILE_SCAN_LIMIT = 10000
DEFAULT_RAVENDB_URL = "http://localhost:8080"
DEFAULT_RAVENDB_DATABASE = "sourcelens"
DEFAULT_RAVENDB_COLLECTION = "SourceVectors"
DEFAULT_BLOB_REGION = "us-east-1"

# =============================================================================
# Display Settings
# =============================================================================
CONTENT_PREVIEW_LENGTH = 200  # Characters to show in content previews

# =============================================================================
# Default URLs and Models
# =============================================================================
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_LLM_MODELS = {
    "ollama": "llama3",
    "gemini": "gemini-2.5-flash",
}
DEFAULT_LARGE_CONTEXT_SERVICE = "gemini"
DEFAULT_LARGE_CONTEXT_MODEL = "gemini-2.5-pro"
DEFAULT_MCP_HOST = "0.0.0.0"
DEFAULT_MCP_PORT = 8001


def get_embedding_model(service: str | None = None) -> str:
    """Get the default embedding model for a given LLM service.

    Checks the EMBEDDING_MODEL environment variable first, then falls back
    to service-specific defaults.

    Args:
        service: The LLM service name ("ollama" or "gemini").
                If None, uses LLM_SERVICE env var or defaults to "ollama".

    Returns:
        str: The embedding model name to use.
    """
    env_model = os.getenv("EMBEDDING_MODEL")
    if env_model:
        return env_model

    if service is None:
        service = os.getenv("LLM_SERVICE", "ollama")

    return EMBEDDING_DEFAULTS.get(service, EMBEDDING_DEFAULTS["ollama"])


def get_embedding_dimensions() -> int:
    """Get the configured embedding dimension for the vector index.

    Returns:
        int: Value of EMBEDDING_DIMENSIONS, or DEFAULT_EMBEDDING_DIMENSIONS.
    """
    return int(os.getenv("EMBEDDING_DIMENSIONS", str(DEFAULT_EMBEDDING_DIMENSIONS)))
