"""Pytest configuration and shared fixtures for the test suite."""

import pytest
import pytest_asyncio
import requests
from fakes import TEST_DIMENSIONS, FakeLLMService, InMemoryBlobStore, InMemoryVectorStore

from sourcelens.llm.factory import ModelChoice
from sourcelens.llm.router import ModelRouter
from sourcelens.service.database import RavenVectorStore, create_document_store, database_exists
from sourcelens.service.document_store import DocumentStore
from sourcelens.service.embeddings import EmbeddingProvider
from sourcelens.service.reconciler import Reconciler
from sourcelens.service.services import Services


# Service availability checks
def ollama_available() -> bool:
    """Check if Ollama server is running and accessible."""
    try:
        response = requests.get("http://localhost:11434/api/tags", timeout=2)
        return response.status_code == 200
    except requests.RequestException:
        return False


def ravendb_available() -> bool:
    """Check if RavenDB server is running and accessible."""
    try:
        response = requests.get("http://localhost:8080/databases", timeout=2)
        return response.status_code in (200, 401)  # Auth required is OK
    except requests.RequestException:
        return False


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def llm_service() -> FakeLLMService:
    return FakeLLMService(model="llama3")


@pytest.fixture
def large_llm_service() -> FakeLLMService:
    return FakeLLMService(model="gemini-2.5-pro", script=[["Large context analysis."]])


@pytest.fixture
def router(llm_service, large_llm_service) -> ModelRouter:
    default = ModelChoice(provider="ollama", model="llama3")
    large = ModelChoice(provider="gemini", model="gemini-2.5-pro")
    router = ModelRouter(default=default, large_context=large)
    router.register(default, llm_service)
    router.register(large, large_llm_service)
    return router


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest_asyncio.fixture
async def embedder(llm_service) -> EmbeddingProvider:
    return await EmbeddingProvider(llm_service, TEST_DIMENSIONS).initialize()


@pytest_asyncio.fixture
async def document_store(embedder, vector_store, blob_store) -> DocumentStore:
    return await DocumentStore(embedder, vector_store, blob_store).initialize()


@pytest.fixture
def reconciler(vector_store, blob_store) -> Reconciler:
    return Reconciler(vector_store, blob_store)


@pytest.fixture
def services(document_store, router, reconciler) -> Services:
    return Services(document_store=document_store, router=router, reconciler=reconciler)


@pytest.fixture
def skip_if_no_ollama():
    """Skip test if Ollama is not available."""
    if not ollama_available():
        pytest.skip("Ollama server not available at localhost:11434")


@pytest.fixture
def ravendb_vector_store():
    """A RavenVectorStore on a scratch collection of the configured database."""
    if not ravendb_available():
        pytest.skip("RavenDB server not available at localhost:8080")
    if not database_exists():
        pytest.skip("RavenDB database does not exist")

    store = create_document_store()
    yield RavenVectorStore(store, "TestSourceVectors", 3)
    store.close()


@pytest.fixture
def interview_text() -> str:
    """Three paragraphs of plain text, well above the minimum chunk length."""
    return (
        "Maria described the first winter on the farm and how the well froze.\n\n"
        "Her brother remembered the move to the city in 1962 as a relief.\n\n"
        "Both agreed the harvest festival was the best day of every year."
    )
