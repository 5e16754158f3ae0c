"""Provider/model choices and the services built from them."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

from dotenv import load_dotenv

from sourcelens.constants import DEFAULT_LLM_MODELS, DEFAULT_OLLAMA_HOST
from sourcelens.exceptions import ConfigurationError
from sourcelens.llm.base import LLMService
from sourcelens.llm.gemini import GeminiService
from sourcelens.llm.ollama import OllamaService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelChoice:
    """A provider/model pair the router can hand out.

    ``host`` only applies to self-hosted providers (Ollama).
    """

    provider: str
    model: str
    host: str | None = None

    @classmethod
    def from_env(
        cls,
        service_var: str,
        model_var: str,
        default_service: str,
        default_model: str | None = None,
    ) -> "ModelChoice":
        """Read a choice from a pair of environment variables.

        The model falls back to ``default_model``, then to the provider's
        entry in DEFAULT_LLM_MODELS. OLLAMA_HOST is picked up for Ollama.
        """
        provider = os.getenv(service_var, default_service)
        model = os.getenv(model_var) or default_model or DEFAULT_LLM_MODELS.get(provider, "llama3")
        host = os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST) if provider == "ollama" else None
        return cls(provider=provider, model=model, host=host)


def _ollama(choice: ModelChoice) -> LLMService:
    return OllamaService(host=choice.host or DEFAULT_OLLAMA_HOST, model=choice.model)


def _gemini(choice: ModelChoice) -> LLMService:
    return GeminiService(model=choice.model)


PROVIDERS: dict[str, Callable[[ModelChoice], LLMService]] = {
    "ollama": _ollama,
    "gemini": _gemini,
}


def build_llm_service(choice: ModelChoice) -> LLMService:
    """Construct the service for ``choice``.

    Raises:
        ConfigurationError: If the provider is not one of PROVIDERS.
    """
    builder = PROVIDERS.get(choice.provider)
    if builder is None:
        raise ConfigurationError(
            f"Unsupported LLM provider '{choice.provider}'. Expected one of {sorted(PROVIDERS)}"
        )
    logger.debug(f"Building {choice.provider} service for model {choice.model}")
    return builder(choice)
