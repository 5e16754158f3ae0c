"""Base classes and protocols for LLM services."""

import logging
from collections.abc import AsyncIterator
from typing import Protocol

logger = logging.getLogger(__name__)


class LLMService(Protocol):
    """Protocol defining the interface for LLM services.

    This protocol ensures type safety and allows for multiple LLM provider
    implementations while maintaining a consistent interface.
    """

    model: str

    def stream_response(
        self,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response from the LLM as incremental text fragments.

        Args:
            messages: List of message dictionaries with 'role' and 'content' keys.
                     Example: [{"role": "user", "content": "Hello"}]
            temperature: Optional sampling temperature
            max_tokens: Optional cap on generated tokens

        Yields:
            str: Text fragments in the order the provider produces them.

        Raises:
            ModelCallError: If the provider call fails before or during streaming.
        """
        ...

    async def generate_response(
        self,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a complete response by collecting the stream."""
        ...

    def generate_embeddings(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed
            model: Optional embedding model name. If None, uses a default for the service.

        Returns:
            list[list[float]]: List of embedding vectors, one per input text
        """
        ...


class StreamingMixin:
    """Mixin providing the non-streaming form and message logging.

    Any service that implements ``stream_response`` gets ``generate_response``
    for free by collecting the fragments.
    """

    model: str

    def _log_messages(self, messages: list[dict]) -> None:
        logger.info(f"🗣️  Generating response with {self.model}")
        logger.debug(f"Messages: {len(messages)} messages")
        for i, msg in enumerate(messages):
            role = msg.get("role", "unknown")
            content_preview = msg.get("content", "")[:100]
            logger.debug(f"  Message {i + 1} ({role}): {content_preview}...")

    async def generate_response(
        self,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a complete response by collecting ``stream_response``.

        Returns:
            str: The generated response content from the model.
        """
        parts = []
        async for fragment in self.stream_response(  # type: ignore[attr-defined]
            messages, temperature=temperature, max_tokens=max_tokens
        ):
            parts.append(fragment)
        content = "".join(parts)
        logger.info(f"✅ Response generated: {len(content)} characters")
        return content
