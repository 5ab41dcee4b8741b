"""Shared HTTP client utilities (requests + retry/backoff).

HTTP logic is kept here so every provider times out, classifies and retries
requests the same way.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from mealmind.domain.config.retry import RetryConfig
from mealmind.infrastructure.retry import (
    RetryableErrorRules,
    RetryPolicy,
    is_retryable_error,
    log_retry,
    with_retry,
    with_timeout,
)

logger = logging.getLogger(__name__)


def retry_config_from_dict(config: Dict[str, Any]) -> RetryConfig:
    """Parse retry config from a flat provider dict, supporting legacy aliases.

    Unparseable or out-of-range values fall back to defaults or are clamped
    instead of failing, since the dict may come from older configs.
    """
    defaults = RetryConfig()

    max_attempts = config.get("max_attempts")
    base_delay_ms = config.get("base_delay_ms")
    max_delay_ms = config.get("max_delay_ms", defaults.max_delay_ms)
    jitter_ratio = config.get("jitter_ratio")

    # Legacy aliases
    if max_attempts is None:
        max_attempts = config.get("max_retries", defaults.max_attempts)
    if base_delay_ms is None:
        base_delay_ms = config.get("initial_delay_ms", defaults.base_delay_ms)
    if jitter_ratio is None:
        jitter_ratio = config.get("jitter", defaults.jitter_ratio)

    try:
        max_attempts_i = int(max_attempts)
    except (TypeError, ValueError):
        max_attempts_i = defaults.max_attempts

    try:
        base_delay_i = int(base_delay_ms)
    except (TypeError, ValueError):
        base_delay_i = defaults.base_delay_ms

    try:
        max_delay_i = int(max_delay_ms)
    except (TypeError, ValueError):
        max_delay_i = defaults.max_delay_ms

    try:
        jitter_f = float(jitter_ratio)
    except (TypeError, ValueError):
        jitter_f = defaults.jitter_ratio

    return RetryConfig(
        max_attempts=min(max(max_attempts_i, 1), 10),
        base_delay_ms=max(base_delay_i, 0),
        max_delay_ms=max(max_delay_i, 0),
        jitter_ratio=min(max(jitter_f, 0.0), 1.0),
    )


async def post_json(
    url: str,
    *,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    timeout_ms: float,
) -> requests.Response:
    """Send a single JSON POST without raising on HTTP error statuses.

    The blocking ``requests`` call runs on a worker thread; the attempt is
    aborted with ``AbortError`` once ``timeout_ms`` elapses.
    """
    logger.debug(f"HTTP POST {url.split('?', 1)[0]}")
    return await with_timeout(
        asyncio.to_thread(
            requests.post,
            url,
            json=payload,
            headers=headers,
            timeout=timeout_ms / 1000,
        ),
        timeout_ms,
    )


async def post_json_with_retries(
    url: str,
    *,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    timeout_ms: float,
    retry: RetryConfig,
    rules: Optional[RetryableErrorRules] = None,
    label: str = "HTTP",
    context: Optional[str] = None,
) -> requests.Response:
    """POST JSON, retrying transient failures (network errors, 408/429/5xx...).

    Raises:
        requests.HTTPError: For a non-retryable status or the last failed attempt
        Exception: Any other final failure, unchanged
    """

    async def _request() -> requests.Response:
        resp = await post_json(url, payload=payload, headers=headers, timeout_ms=timeout_ms)
        resp.raise_for_status()
        return resp

    policy = RetryPolicy.from_config(
        retry,
        should_retry=lambda error: is_retryable_error(error, rules),
        on_retry=log_retry(logger, label, context),
    )
    return await with_retry(_request, policy)
