"""Gemini LLM provider (generateContent REST API)"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from mealmind.domain.config.classification import ClassificationConfig
from mealmind.infrastructure.http_client import post_json, retry_config_from_dict
from mealmind.infrastructure.llm.base import (
    LLMProvider,
    LLMProviderError,
    build_provider_error,
    parse_json_object,
)
from mealmind.infrastructure.retry import (
    RetryPolicy,
    is_retryable_error,
    log_retry,
    rules_from_config,
    with_retry,
)

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """Google Gemini API provider"""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-3-flash-preview"
    DEFAULT_TIMEOUT_MS = 25_000

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize Gemini provider

        Args:
            config: Configuration dictionary with:
                - api_key: Gemini API key (or from GEMINI_API_KEY env)
                - model: Model name (or from GEMINI_MODEL env, default: "gemini-3-flash-preview")
                - temperature: Optional sampling temperature
                - timeout_ms: Per-attempt timeout (default: 25000)
                - max_attempts, base_delay_ms, max_delay_ms, jitter_ratio: retry policy
                - classification: Optional retryable error table overrides
        """
        if config is None:
            config = {}
        super().__init__(config)

        self.api_key = config.get("api_key") or os.getenv("GEMINI_API_KEY")
        self.model = config.get("model") or os.getenv("GEMINI_MODEL") or self.DEFAULT_MODEL
        self.temperature = config.get("temperature")
        self.timeout_ms = float(config.get("timeout_ms") or self.DEFAULT_TIMEOUT_MS)
        self.retry = retry_config_from_dict(config)
        self.rules = rules_from_config(ClassificationConfig(**(config.get("classification") or {})))

    def _validate_config(self, config: Dict[str, Any]) -> None:
        api_key = config.get("api_key") or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError(
                "Gemini API key is required. "
                "Set GEMINI_API_KEY environment variable or provide api_key in config."
            )

        if config.get("model") is not None and not isinstance(config["model"], str):
            raise ValueError("model must be a string")

        temp = config.get("temperature")
        if temp is not None and (not isinstance(temp, (int, float)) or not (0.0 <= temp <= 2.0)):
            raise ValueError("temperature must be between 0.0 and 2.0")

    @property
    def url(self) -> str:
        model_path = self.model if self.model.startswith("models/") else f"models/{self.model}"
        return f"{self.BASE_URL}/{model_path}:generateContent"

    async def _generate_content(self, payload: Dict[str, Any], context: str) -> str:
        # API key travels in a header, never in the URL
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

        async def _request() -> Dict[str, Any]:
            response = await post_json(self.url, payload=payload, headers=headers, timeout_ms=self.timeout_ms)
            try:
                data = response.json()
            except ValueError:
                data = None

            if not response.ok:
                error = data.get("error") if isinstance(data, dict) else None
                if not isinstance(error, dict):
                    error = {}
                status_suffix = f" ({error['status']})" if error.get("status") else ""
                message = (
                    error.get("message")
                    or response.text
                    or response.reason
                    or "Gemini API request failed"
                )
                raise LLMProviderError(
                    f"Gemini API failed{status_suffix}: {message}",
                    status=response.status_code,
                )

            return data if isinstance(data, dict) else {"candidates": []}

        policy = RetryPolicy.from_config(
            self.retry,
            should_retry=lambda error: is_retryable_error(error, self.rules),
            on_retry=log_retry(logger, "Gemini", context),
        )
        data = await with_retry(_request, policy)

        text = self._candidate_text(data)
        if not text:
            raise LLMProviderError("Gemini API returned empty response")
        return text

    @staticmethod
    def _candidate_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        if not isinstance(content, dict):
            return ""
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            return ""
        return "".join(part.get("text") or "" for part in parts if isinstance(part, dict)).strip()

    def _generation_config(self, **extra: Any) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = dict(extra)
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        return generation_config

    async def generate_text(self, prompt: str) -> str:
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        generation_config = self._generation_config()
        if generation_config:
            payload["generationConfig"] = generation_config

        try:
            return await self._generate_content(payload, "text")
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            wrapped = build_provider_error("Gemini API failed", e)
            if wrapped is e:
                raise
            raise wrapped from e

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"responseMimeType": "application/json"}
        if response_format:
            extra["responseSchema"] = response_format
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": self._generation_config(**extra),
        }

        try:
            text = await self._generate_content(payload, "structured-response")
            return parse_json_object(text, "Gemini")
        except Exception as e:
            logger.error(f"Gemini structured generation error: {e}")
            wrapped = build_provider_error("Gemini structured generation failed", e)
            if wrapped is e:
                raise
            raise wrapped from e

    def get_name(self) -> str:
        return "gemini"
