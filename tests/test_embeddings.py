"""Tests for the embedding provider."""

import pytest

from sourcelens.exceptions import EmbeddingError, NotInitializedError
from sourcelens.service.embeddings import EmbeddingProvider, validate_vector
from fakes import TEST_DIMENSIONS, FakeLLMService


class TestValidateVector:
    """Tests for validate_vector function."""

    def test_accepts_numbers_of_right_length(self):
        assert validate_vector((1, 2.5, 3), 3) == [1.0, 2.5, 3.0]

    def test_rejects_wrong_length(self):
        with pytest.raises(EmbeddingError, match="expected 3, got 2"):
            validate_vector([1.0, 2.0], 3)

    def test_rejects_non_numeric_values(self):
        with pytest.raises(EmbeddingError, match="non-numeric"):
            validate_vector([1.0, "2", 3.0], 3)

    def test_rejects_booleans(self):
        with pytest.raises(EmbeddingError):
            validate_vector([True, 0.0], 2)

    def test_rejects_non_sequences(self):
        with pytest.raises(EmbeddingError, match="must be a list"):
            validate_vector("abc", 3)


class TestEmbeddingProvider:
    """Tests for EmbeddingProvider."""

    @pytest.mark.asyncio
    async def test_embed_before_initialize_raises(self):
        """Test that embedding fails until initialize() completes."""
        provider = EmbeddingProvider(FakeLLMService(), TEST_DIMENSIONS)

        with pytest.raises(NotInitializedError):
            await provider.embed(["hello"])
        with pytest.raises(NotInitializedError):
            await provider.embed_one("hello")

    @pytest.mark.asyncio
    async def test_initialize_embeds_test_text(self):
        service = FakeLLMService()

        provider = await EmbeddingProvider(service, TEST_DIMENSIONS).initialize()

        assert provider.ready is True
        assert service.embedding_calls == [["test"]]

    @pytest.mark.asyncio
    async def test_initialize_without_verification_makes_no_call(self):
        service = FakeLLMService()

        await EmbeddingProvider(service, TEST_DIMENSIONS).initialize(verify_dimensions=False)

        assert service.embedding_calls == []

    @pytest.mark.asyncio
    async def test_initialize_detects_dimension_mismatch(self):
        """Test that a provider returning the wrong dimension fails at startup."""
        service = FakeLLMService(dimensions=TEST_DIMENSIONS + 1)
        provider = EmbeddingProvider(service, TEST_DIMENSIONS)

        with pytest.raises(EmbeddingError, match="dimension mismatch"):
            await provider.initialize()
        assert provider.ready is False

    @pytest.mark.asyncio
    async def test_embed_batches_requests_of_ten(self):
        """Test that texts are sent in groups of at most ten, order preserved."""
        service = FakeLLMService()
        provider = await EmbeddingProvider(service, TEST_DIMENSIONS).initialize(verify_dimensions=False)
        texts = [f"text number {i}" for i in range(25)]

        vectors = await provider.embed(texts)

        assert [len(call) for call in service.embedding_calls] == [10, 10, 5]
        assert len(vectors) == 25
        assert all(len(vector) == TEST_DIMENSIONS for vector in vectors)
        assert service.embedding_calls[2][-1] == "text number 24"

    @pytest.mark.asyncio
    async def test_count_mismatch_raises(self):
        service = FakeLLMService()
        service.embedding_override = lambda texts: [[0.0] * TEST_DIMENSIONS]
        provider = await EmbeddingProvider(service, TEST_DIMENSIONS).initialize(verify_dimensions=False)

        with pytest.raises(EmbeddingError, match="Expected 2 embeddings"):
            await provider.embed(["one", "two"])

    @pytest.mark.asyncio
    async def test_service_failure_is_wrapped(self):
        """Test that provider exceptions become EmbeddingError."""

        def fail(texts):
            raise ConnectionError("refused")

        service = FakeLLMService()
        service.embedding_override = fail
        provider = await EmbeddingProvider(service, TEST_DIMENSIONS).initialize(verify_dimensions=False)

        with pytest.raises(EmbeddingError, match="refused"):
            await provider.embed_one("hello")
