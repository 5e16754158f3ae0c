"""LLM service abstraction layer for SourceLens.

This package provides a unified interface for multiple LLM providers:
- OllamaService: Local LLM via Ollama (default provider)
- GeminiService: Google Gemini API (large-context provider)

All services implement the LLMService protocol: streamed chat completion
plus embeddings. ModelRouter picks between the two by estimated size.

Usage:
    from sourcelens.llm import ModelChoice, ModelRouter, build_llm_service

    service = build_llm_service(ModelChoice("gemini", "gemini-2.5-pro"))
    router = ModelRouter.from_env()
"""

from sourcelens.llm.base import LLMService, StreamingMixin
from sourcelens.llm.factory import ModelChoice, build_llm_service
from sourcelens.llm.gemini import GeminiService
from sourcelens.llm.ollama import OllamaService
from sourcelens.llm.router import ModelRouter, estimate_tokens

__all__ = [
    "LLMService",
    "StreamingMixin",
    "OllamaService",
    "GeminiService",
    "build_llm_service",
    "ModelChoice",
    "ModelRouter",
    "estimate_tokens",
]
