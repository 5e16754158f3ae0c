"""Embedding provider with batching and dimension validation."""

import asyncio
import logging
import numbers

from sourcelens.constants import EMBEDDING_BATCH_SIZE
from sourcelens.exceptions import EmbeddingError, NotInitializedError
from sourcelens.llm.base import LLMService

logger = logging.getLogger(__name__)


def validate_vector(vector: object, dimensions: int) -> list[float]:
    """Check that ``vector`` is a list of numbers of exactly ``dimensions`` length.

    Raises:
        EmbeddingError: On a non-sequence, non-numeric entries or a length mismatch.
    """
    if not isinstance(vector, (list, tuple)):
        raise EmbeddingError(f"Embedding must be a list of numbers, got {type(vector).__name__}")
    if len(vector) != dimensions:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimensions}, got {len(vector)}"
        )
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise EmbeddingError(f"Embedding contains a non-numeric value: {value!r}")
    return [float(value) for value in vector]


class EmbeddingProvider:
    """Turn text into fixed-dimension vectors through an LLM service.

    Requests go to the hosted model in groups of ``batch_size`` texts. Every
    returned vector is validated against the configured dimension; a bad
    vector fails its whole batch and nothing is coerced.
    """

    def __init__(
        self,
        service: LLMService,
        dimensions: int,
        model: str | None = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
    ) -> None:
        self.service = service
        self.dimensions = dimensions
        self.model = model
        self.batch_size = batch_size
        self.ready = False

    async def initialize(self, verify_dimensions: bool = True) -> "EmbeddingProvider":
        """Mark the provider ready, optionally embedding a test text first.

        Raises:
            EmbeddingError: If the test call fails or returns a wrong-sized vector.
        """
        if verify_dimensions:
            await self._embed_batch(["test"])
            logger.info(f"✅ Embedding provider ready ({self.dimensions} dimensions)")
        self.ready = True
        return self

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, preserving order and count.

        Raises:
            NotInitializedError: If initialize() has not completed.
            EmbeddingError: If any batch fails or returns invalid vectors.
        """
        if not self.ready:
            raise NotInitializedError("Embedding provider has not been initialized")

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text, e.g. a query at search time."""
        if not self.ready:
            raise NotInitializedError("Embedding provider has not been initialized")
        return (await self._embed_batch([text]))[0]

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            raw = await asyncio.to_thread(self.service.generate_embeddings, batch, self.model)
        except Exception as e:
            logger.error(f"❌ Embedding request failed: {e}", exc_info=True)
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not isinstance(raw, list) or len(raw) != len(batch):
            count = len(raw) if isinstance(raw, list) else "no"
            raise EmbeddingError(f"Expected {len(batch)} embeddings, got {count}")
        return [validate_vector(vector, self.dimensions) for vector in raw]
