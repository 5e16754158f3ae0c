"""Ollama LLM service implementation."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import ollama

from sourcelens.constants import get_embedding_model
from sourcelens.exceptions import ModelCallError
from sourcelens.llm.base import StreamingMixin

logger = logging.getLogger(__name__)


class OllamaService(StreamingMixin):
    """Ollama LLM service implementation.

    This service uses the Ollama API to stream responses from local LLM models
    and to generate embeddings. It is the default provider for standard-size
    analysis batches.
    """

    def __init__(self, host: str, model: str) -> None:
        """Initialize the Ollama service.

        Args:
            host: The Ollama server host URL (e.g., "http://localhost:11434")
            model: The model name to use (e.g., "llama3")
        """
        self.host = host
        self.model = model
        logger.info(f"🤖 Initializing OllamaService: host={host}, model={model}")
        self.client = ollama.Client(host=host)
        self.async_client = ollama.AsyncClient(host=host)

    async def stream_response(
        self,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response using Ollama.

        Args:
            messages: List of message dictionaries with 'role' and 'content' keys.
            temperature: Optional sampling temperature
            max_tokens: Optional cap on generated tokens (Ollama ``num_predict``)

        Yields:
            str: Content fragments as they arrive.
        """
        self._log_messages(messages)

        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        chat_kwargs: dict[str, Any] = {"model": self.model, "messages": messages, "stream": True}
        if options:
            chat_kwargs["options"] = options

        try:
            stream = await self.async_client.chat(**chat_kwargs)
            async for part in stream:
                content = part.message.content or ""
                if content:
                    yield content
        except (ollama.ResponseError, ConnectionError, OSError) as e:
            logger.error(f"❌ Ollama API error: {e}", exc_info=True)
            raise ModelCallError(f"Ollama request to {self.model} failed: {e}") from e

    def generate_embeddings(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """Generate embeddings for a list of texts using Ollama.

        The whole list is sent in a single request.

        Args:
            texts: List of text strings to embed
            model: Optional embedding model name. If None, uses EMBEDDING_MODEL env var
                   or service-specific default.

        Returns:
            list[list[float]]: List of embedding vectors
        """
        embedding_model = model or get_embedding_model("ollama")
        response = self.client.embed(model=embedding_model, input=texts)
        embeddings = [list(vector) for vector in response["embeddings"]]

        logger.info(f"✅ Generated {len(embeddings)} embeddings with {embedding_model}")
        return embeddings
