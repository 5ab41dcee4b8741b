import pytest

from mealmind.infrastructure.llm.factory import LLMProviderFactory
from mealmind.infrastructure.llm.gemini import GeminiProvider
from mealmind.infrastructure.llm.mock import MockLLMProvider
from mealmind.infrastructure.llm.openai import OpenAIProvider


def test_factory_supports_providers():
    # "real" providers should be instantiable without performing network calls
    assert isinstance(LLMProviderFactory.create("openai", {"api_key": "test"}), OpenAIProvider)
    assert isinstance(LLMProviderFactory.create("gemini", {"api_key": "test"}), GeminiProvider)
    assert isinstance(LLMProviderFactory.create("MOCK"), MockLLMProvider)


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Available providers: mock, openai, gemini"):
        LLMProviderFactory.create("openrouter")


def test_factory_passes_retry_config():
    provider = LLMProviderFactory.create("mock", {"max_attempts": 5, "base_delay_ms": 10})
    assert provider.retry.max_attempts == 5
    assert provider.retry.base_delay_ms == 10
