"""Mock LLM provider for testing and offline runs"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from mealmind.domain.config.classification import ClassificationConfig
from mealmind.infrastructure.http_client import retry_config_from_dict
from mealmind.infrastructure.llm.base import LLMProvider, LLMProviderError, parse_json_object
from mealmind.infrastructure.retry import (
    RetryPolicy,
    is_retryable_error,
    log_retry,
    rules_from_config,
    with_retry,
)

logger = logging.getLogger(__name__)


class MockLLMProvider(LLMProvider):
    """Mock LLM provider that returns predefined responses"""

    def __init__(self, config: Dict[str, Any] = None):
        """Initialize mock provider

        Args:
            config: Optional configuration with:
                - delay: Simulated API delay in seconds (default: 0)
                - responses: Dict mapping prompts to responses
                - failures: HTTP statuses raised by the first calls, in order,
                  before responses are served (exercises the retry path)
                - max_attempts, base_delay_ms, max_delay_ms, jitter_ratio: retry policy
                - classification: Optional retryable error table overrides
        """
        if config is None:
            config = {}
        super().__init__(config)
        self.delay = config.get("delay", 0)
        self.responses: Dict[str, str] = config.get("responses", {})
        self.failures: List[int] = list(config.get("failures", []))
        self.retry = retry_config_from_dict(config)
        self.rules = rules_from_config(ClassificationConfig(**(config.get("classification") or {})))
        self.calls = 0

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate mock provider configuration"""
        if "delay" in config and not isinstance(config["delay"], (int, float)):
            raise ValueError("delay must be a number")
        if "delay" in config and config["delay"] < 0:
            raise ValueError("delay must be non-negative")
        failures = config.get("failures", [])
        if not isinstance(failures, list) or not all(isinstance(s, int) for s in failures):
            raise ValueError("failures must be a list of HTTP status codes")

    async def _call(self, key: str, default: str) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            status = self.failures.pop(0)
            raise LLMProviderError(f"Mock API failed: HTTP {status}", status=status)
        return self.responses.get(key, default)

    async def _with_retry(self, key: str, default: str, context: str) -> str:
        policy = RetryPolicy.from_config(
            self.retry,
            should_retry=lambda error: is_retryable_error(error, self.rules),
            on_retry=log_retry(logger, "Mock", context),
        )
        return await with_retry(lambda: self._call(key, default), policy)

    async def generate_text(self, prompt: str) -> str:
        """Generate mock response

        Args:
            prompt: Input prompt (used to lookup predefined response)

        Returns:
            Mock response text
        """
        return await self._with_retry(prompt, "Mock LLM response", "text")

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        default = json.dumps({"mock": True, "prompt": user_prompt})
        text = await self._with_retry(user_prompt, default, "structured-response")
        return parse_json_object(text, "Mock")

    def get_name(self) -> str:
        return "mock"
