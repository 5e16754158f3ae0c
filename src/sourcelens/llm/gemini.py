"""Google Gemini LLM service implementation."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import errors as genai_errors

from sourcelens.constants import get_embedding_dimensions, get_embedding_model
from sourcelens.exceptions import ModelCallError
from sourcelens.llm.base import StreamingMixin

logger = logging.getLogger(__name__)


class GeminiService(StreamingMixin):
    """Google Gemini LLM service implementation.

    This service uses the Google Gemini API. The API key is automatically
    retrieved from the GEMINI_API_KEY environment variable. Gemini's long
    context window makes it the large-context provider for oversized batches.
    """

    def __init__(self, model: str) -> None:
        """Initialize the Gemini service.

        Args:
            model: The model name to use (e.g., "gemini-2.5-pro")
        """
        self.model = model
        logger.info(f"🤖 Initializing GeminiService: model={model}")
        # The client gets the API key from the GEMINI_API_KEY environment variable
        self.client = genai.Client()

    @staticmethod
    def _split_messages(messages: list[dict]) -> tuple[str | None, list[genai.types.Content]]:
        """Convert chat messages to a system instruction plus Gemini contents.

        Gemini has no "system" or "assistant" roles in ``contents``: system
        messages become the system instruction and assistant turns use "model".
        """
        system_parts = []
        contents = []
        for msg in messages:
            role = msg.get("role", "user")
            text = msg.get("content", "")
            if role == "system":
                system_parts.append(text)
                continue
            contents.append(
                genai.types.Content(
                    role="model" if role == "assistant" else "user",
                    parts=[genai.types.Part.from_text(text=text)],
                )
            )
        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents

    async def stream_response(
        self,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response using Gemini.

        Args:
            messages: List of message dictionaries with 'role' and 'content' keys.
            temperature: Optional sampling temperature
            max_tokens: Optional cap on generated tokens

        Yields:
            str: Content fragments as they arrive.
        """
        self._log_messages(messages)
        system_instruction, contents = self._split_messages(messages)

        config_kwargs: dict[str, Any] = {}
        if system_instruction:
            config_kwargs["system_instruction"] = system_instruction
        if temperature is not None:
            config_kwargs["temperature"] = temperature
        if max_tokens is not None:
            config_kwargs["max_output_tokens"] = max_tokens

        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=contents,
                config=genai.types.GenerateContentConfig(**config_kwargs),
            )
            async for chunk in stream:
                text = chunk.text or ""
                if text:
                    yield text
        except genai_errors.APIError as e:
            logger.error(f"❌ Gemini API error: {e}", exc_info=True)
            raise ModelCallError(f"Gemini request to {self.model} failed: {e}") from e

    def generate_embeddings(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """Generate embeddings for a list of texts using Gemini.

        Args:
            texts: List of text strings to embed
            model: Optional embedding model name. If None, uses EMBEDDING_MODEL env var
                   or service-specific default.

        Returns:
            list[list[float]]: List of embedding vectors sized to EMBEDDING_DIMENSIONS
        """
        embedding_model = model or get_embedding_model("gemini")
        response = self.client.models.embed_content(
            model=embedding_model,
            contents=texts,
            config=genai.types.EmbedContentConfig(
                output_dimensionality=get_embedding_dimensions()
            ),
        )
        embeddings = [list(embedding.values) for embedding in response.embeddings]

        logger.info(f"✅ Generated {len(embeddings)} embeddings with {embedding_model}")
        return embeddings
