"""Base LLM provider interface"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from mealmind.infrastructure.retry import extract_code, extract_status, get_error_message


class LLMProviderError(RuntimeError):
    """Provider failure that keeps the HTTP status / error code of its cause."""

    def __init__(self, message: str, *, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


def build_provider_error(prefix: str, error: BaseException) -> LLMProviderError:
    """Wrap ``error`` with a provider prefix, applied only once.

    Status and code are copied over so callers can still classify the
    failure. Use as ``raise build_provider_error(prefix, e) from e``.
    """
    message = get_error_message(error) or "Unknown error"
    if isinstance(error, LLMProviderError) and message.startswith(prefix):
        return error
    return LLMProviderError(
        f"{prefix}: {message}",
        status=extract_status(error),
        code=extract_code(error),
    )


def parse_json_object(text: str, label: str) -> Dict[str, Any]:
    """Parse a model reply that must be a JSON object.

    Raises:
        LLMProviderError: If the text is not JSON or not an object
    """
    try:
        parsed = json.loads(text)
    except ValueError as e:
        raise LLMProviderError(f"{label} response is not valid JSON") from e
    if not isinstance(parsed, dict):
        raise LLMProviderError(f"{label} response is not a JSON object")
    return parsed


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    def __init__(self, config: Dict[str, Any]):
        """Initialize provider with configuration

        Args:
            config: Provider configuration dictionary

        Raises:
            ValueError: If configuration is invalid
        """
        self.config = config
        self._validate_config(config)

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate provider configuration

        Args:
            config: Configuration dictionary

        Raises:
            ValueError: If configuration is invalid
        """
        # Override in subclasses for specific validation
        pass

    @abstractmethod
    async def generate_text(self, prompt: str) -> str:
        """Generate a plain text reply

        Args:
            prompt: Input prompt

        Returns:
            Generated text, stripped

        Raises:
            LLMProviderError: If generation fails
        """

    @abstractmethod
    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Generate a structured reply

        Args:
            system_prompt: Instructions for the model
            user_prompt: Request content
            response_format: Provider-specific structured output format

        Returns:
            Parsed JSON object

        Raises:
            LLMProviderError: If generation fails or the reply is not a JSON object
        """

    @abstractmethod
    def get_name(self) -> str:
        """Provider name"""
