"""Configuration models with Pydantic validation."""

from mealmind.domain.config.app import AppConfig
from mealmind.domain.config.classification import ClassificationConfig
from mealmind.domain.config.llm import LLMConfig
from mealmind.domain.config.retry import RetryConfig

__all__ = [
    "AppConfig",
    "LLMConfig",
    "RetryConfig",
    "ClassificationConfig",
]
