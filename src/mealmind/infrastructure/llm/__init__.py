"""LLM providers"""

from mealmind.infrastructure.llm.base import LLMProvider, LLMProviderError
from mealmind.infrastructure.llm.gemini import GeminiProvider
from mealmind.infrastructure.llm.mock import MockLLMProvider
from mealmind.infrastructure.llm.openai import OpenAIProvider

__all__ = ["LLMProvider", "LLMProviderError", "MockLLMProvider", "OpenAIProvider", "GeminiProvider"]
