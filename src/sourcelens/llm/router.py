"""Size-based routing between the standard and large-context providers.

Token counts are estimated with a fixed ``ceil(chars / 4)`` heuristic rather
than a real tokenizer; batch sizing elsewhere relies on the same estimate.
"""

import logging
import math
from dataclasses import dataclass, field

from dotenv import load_dotenv

from sourcelens.constants import (
    CHARS_PER_TOKEN,
    DEFAULT_LARGE_CONTEXT_MODEL,
    DEFAULT_LARGE_CONTEXT_SERVICE,
    ROUTING_THRESHOLD_TOKENS,
)
from sourcelens.llm.base import LLMService
from sourcelens.llm.factory import ModelChoice, build_llm_service

load_dotenv()

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text`` as ``ceil(len(text) / 4)``."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class ModelRouter:
    """Pick a model for a batch from its estimated token count.

    Estimates at or above ``threshold`` go to the large-context choice;
    everything below uses the default choice.
    """

    default: ModelChoice
    large_context: ModelChoice
    threshold: int = ROUTING_THRESHOLD_TOKENS
    _services: dict[ModelChoice, LLMService] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(cls) -> "ModelRouter":
        """Build a router from LLM_SERVICE/LLM_MODEL and LARGE_CONTEXT_* variables."""
        default = ModelChoice.from_env("LLM_SERVICE", "LLM_MODEL", "ollama")
        large_context = ModelChoice.from_env(
            "LARGE_CONTEXT_SERVICE",
            "LARGE_CONTEXT_MODEL",
            DEFAULT_LARGE_CONTEXT_SERVICE,
            DEFAULT_LARGE_CONTEXT_MODEL,
        )
        return cls(default=default, large_context=large_context)

    def choose_provider(self, estimated_tokens: int) -> ModelChoice:
        if estimated_tokens >= self.threshold:
            return self.large_context
        return self.default

    def choose_model(self, estimated_tokens: int) -> str:
        return self.choose_provider(estimated_tokens).model

    def service_for(self, estimated_tokens: int) -> LLMService:
        """Return the (cached) service instance for the routed choice."""
        choice = self.choose_provider(estimated_tokens)
        if choice not in self._services:
            logger.info(
                f"🔀 Routing {estimated_tokens} estimated tokens to "
                f"{choice.provider}:{choice.model}"
            )
            self._services[choice] = build_llm_service(choice)
        return self._services[choice]

    def register(self, choice: ModelChoice, service: LLMService) -> None:
        """Use a pre-built service for a choice instead of constructing one."""
        self._services[choice] = service
