"""OpenAI LLM provider (chat completions)"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from mealmind.domain.config.classification import ClassificationConfig
from mealmind.infrastructure.http_client import post_json_with_retries, retry_config_from_dict
from mealmind.infrastructure.llm.base import (
    LLMProvider,
    LLMProviderError,
    build_provider_error,
    parse_json_object,
)
from mealmind.infrastructure.retry import rules_from_config

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider"""

    API_URL = "https://api.openai.com/v1/chat/completions"
    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_TIMEOUT_MS = 60_000

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize OpenAI provider

        Args:
            config: Configuration dictionary with:
                - api_key: OpenAI API key (or from OPENAI_API_KEY env)
                - model: Model name (default: "gpt-4o-mini")
                - temperature: Optional sampling temperature
                - timeout_ms: Per-attempt timeout (default: 60000)
                - max_attempts, base_delay_ms, max_delay_ms, jitter_ratio: retry policy
                - classification: Optional retryable error table overrides
        """
        if config is None:
            config = {}
        super().__init__(config)

        self.api_key = config.get("api_key") or os.getenv("OPENAI_API_KEY")
        self.model = config.get("model") or self.DEFAULT_MODEL
        self.temperature = config.get("temperature")
        self.timeout_ms = float(config.get("timeout_ms") or self.DEFAULT_TIMEOUT_MS)
        self.retry = retry_config_from_dict(config)
        self.rules = rules_from_config(ClassificationConfig(**(config.get("classification") or {})))

    def _validate_config(self, config: Dict[str, Any]) -> None:
        api_key = config.get("api_key") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OpenAI API key is required. "
                "Set OPENAI_API_KEY environment variable or provide api_key in config."
            )

        if config.get("model") is not None and not isinstance(config["model"], str):
            raise ValueError("model must be a string")

        temp = config.get("temperature")
        if temp is not None and (not isinstance(temp, (int, float)) or not (0.0 <= temp <= 2.0)):
            raise ValueError("temperature must be between 0.0 and 2.0")

    async def _create_chat_completion(self, body: Dict[str, Any], context: str) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.temperature is not None:
            body = {**body, "temperature": self.temperature}

        response = await post_json_with_retries(
            self.API_URL,
            payload=body,
            headers=headers,
            timeout_ms=self.timeout_ms,
            retry=self.retry,
            rules=self.rules,
            label="OpenAI",
            context=context,
        )
        try:
            return response.json()
        except ValueError as e:
            raise LLMProviderError("OpenAI response is not valid JSON") from e

    @staticmethod
    def _message_text(data: Dict[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return content.strip() if isinstance(content, str) else ""

    async def generate_text(self, prompt: str) -> str:
        try:
            data = await self._create_chat_completion(
                {
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                },
                "text",
            )
            text = self._message_text(data)
            if not text:
                raise LLMProviderError("OpenAI returned empty response")
            return text
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            wrapped = build_provider_error("OpenAI API failed", e)
            if wrapped is e:
                raise
            raise wrapped from e

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            data = await self._create_chat_completion(
                {
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    "response_format": response_format or {"type": "json_object"},
                },
                "structured-response",
            )
            text = self._message_text(data)
            if not text:
                raise LLMProviderError("OpenAI returned empty response")
            return parse_json_object(text, "OpenAI")
        except Exception as e:
            logger.error(f"OpenAI structured generation error: {e}")
            wrapped = build_provider_error("OpenAI structured generation failed", e)
            if wrapped is e:
                raise
            raise wrapped from e

    def get_name(self) -> str:
        return "openai"
