"""Tests for size-based model routing."""

import os
from unittest.mock import MagicMock, patch

import pytest

from sourcelens.llm.router import ModelChoice, ModelRouter, estimate_tokens


@pytest.fixture
def choices():
    return (
        ModelChoice(provider="ollama", model="llama3", host="http://localhost:11434"),
        ModelChoice(provider="gemini", model="gemini-2.5-pro"),
    )


class TestEstimateTokens:
    """Tests for estimate_tokens function."""

    def test_rounds_up_quarter_length(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestModelRouter:
    """Tests for ModelRouter."""

    def test_threshold_boundary_goes_to_large_context(self, choices):
        """Test that exactly 30000 estimated tokens routes to the large model."""
        default, large = choices
        router = ModelRouter(default=default, large_context=large)

        assert router.choose_provider(29999) is default
        assert router.choose_provider(30000) is large
        assert router.choose_model(120000 // 4) == "gemini-2.5-pro"

    def test_text_at_threshold_routes_by_estimate(self, choices):
        default, large = choices
        router = ModelRouter(default=default, large_context=large)

        assert router.choose_provider(estimate_tokens("x" * 119996)) is default
        assert router.choose_provider(estimate_tokens("x" * 119997)) is large

    def test_registered_service_is_used(self, choices):
        default, large = choices
        router = ModelRouter(default=default, large_context=large)
        service = MagicMock()
        router.register(large, service)

        assert router.service_for(50000) is service

    @patch("sourcelens.llm.router.build_llm_service")
    def test_services_are_built_once_per_choice(self, mock_build_llm_service, choices):
        """Test that service_for builds each provider lazily and caches it."""
        default, large = choices
        router = ModelRouter(default=default, large_context=large)

        first = router.service_for(10)
        second = router.service_for(20)

        assert first is second
        mock_build_llm_service.assert_called_once_with(default)

    def test_from_env_reads_both_choices(self):
        env = {
            "LLM_SERVICE": "ollama",
            "LLM_MODEL": "mistral",
            "OLLAMA_HOST": "http://gpu:11434",
            "LARGE_CONTEXT_SERVICE": "gemini",
            "LARGE_CONTEXT_MODEL": "gemini-2.5-flash",
        }
        with patch.dict(os.environ, env):
            router = ModelRouter.from_env()

        assert router.default == ModelChoice("ollama", "mistral", "http://gpu:11434")
        assert router.large_context == ModelChoice("gemini", "gemini-2.5-flash")
        assert router.threshold == 30000
