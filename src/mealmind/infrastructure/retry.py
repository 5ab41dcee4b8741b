"""Retry-with-backoff engine for calls to external LLM APIs.

The module has three parts:

- an error classifier (``is_retryable_error``) that decides whether a failure
  is transient, looking at HTTP status, transport error code and finally the
  error message;
- a delay calculator (``compute_delay``) producing exponential backoff with
  jitter, in milliseconds;
- the runner (``with_retry``) driving a bounded, strictly sequential attempt
  loop on top of tenacity's ``AsyncRetrying``.

The classifier is opt-in: ``with_retry`` retries every failure unless the
policy supplies ``should_retry``.
"""

from __future__ import annotations

import asyncio
import errno
import inspect
import json
import logging
import math
import random
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Tuple, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from mealmind.domain.config.classification import ClassificationConfig
from mealmind.domain.config.retry import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

ShouldRetry = Callable[[BaseException], bool]
OnRetry = Callable[[BaseException, int, int, int], None]

DEFAULT_RETRYABLE_STATUSES: FrozenSet[int] = frozenset({408, 409, 425, 429, 500, 502, 503, 504})
DEFAULT_RETRYABLE_CODES: FrozenSet[str] = frozenset(
    {
        "ETIMEDOUT",
        "ECONNRESET",
        "ECONNREFUSED",
        "EAI_AGAIN",
        "ENOTFOUND",
        "ENETUNREACH",
    }
)
DEFAULT_RETRYABLE_MESSAGES: Tuple[str, ...] = (
    "timeout",
    "timed out",
    "network",
    "socket",
    "fetch failed",
    "connection",
    "temporarily unavailable",
)

# getaddrinfo failures carry negative EAI_* numbers that errno.errorcode does not know
_GAI_CODES: Dict[int, str] = {
    value: name
    for value, name in (
        (getattr(socket, "EAI_AGAIN", None), "EAI_AGAIN"),
        (getattr(socket, "EAI_NONAME", None), "ENOTFOUND"),
    )
    if value is not None
}


class AbortError(Exception):
    """An attempt was cancelled (timeout or explicit abort), not a logical failure."""


class RetryExhaustedError(RuntimeError):
    pass


@dataclass(frozen=True)
class RetryableErrorRules:
    """Tables consulted by ``is_retryable_error``."""

    statuses: FrozenSet[int] = DEFAULT_RETRYABLE_STATUSES
    codes: FrozenSet[str] = DEFAULT_RETRYABLE_CODES
    message_includes: Tuple[str, ...] = DEFAULT_RETRYABLE_MESSAGES


DEFAULT_RULES = RetryableErrorRules()


def rules_from_config(config: Optional[ClassificationConfig]) -> RetryableErrorRules:
    """Build classification rules, keeping defaults for sections left unset."""
    if config is None:
        return DEFAULT_RULES
    return RetryableErrorRules(
        statuses=frozenset(config.statuses) if config.statuses is not None else DEFAULT_RETRYABLE_STATUSES,
        codes=frozenset(config.codes) if config.codes is not None else DEFAULT_RETRYABLE_CODES,
        message_includes=(
            tuple(s.lower() for s in config.message_includes)
            if config.message_includes is not None
            else DEFAULT_RETRYABLE_MESSAGES
        ),
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration of one ``with_retry`` run.

    Attributes:
        max_attempts: Total executions allowed, the first one included
        base_delay_ms: Initial backoff unit in milliseconds
        max_delay_ms: Ceiling on the exponential delay before jitter
        jitter_ratio: Fraction of the delay that is randomized (clamped to 0..1)
        should_retry: Predicate deciding whether a failure is worth another attempt
        on_retry: Observer called as (error, attempt, delay_ms, max_attempts) before each wait
    """

    max_attempts: int = 2
    base_delay_ms: int = 500
    max_delay_ms: int = 2000
    jitter_ratio: float = 0.2
    should_retry: Optional[ShouldRetry] = None
    on_retry: Optional[OnRetry] = None

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        should_retry: Optional[ShouldRetry] = None,
        on_retry: Optional[OnRetry] = None,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            jitter_ratio=config.jitter_ratio,
            should_retry=should_retry,
            on_retry=on_retry,
        )


async def sleep(ms: float) -> None:
    """Suspend the current task for ``ms`` milliseconds."""
    await asyncio.sleep(ms / 1000)


def _clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return min(max(value, low), high)


def compute_delay(attempt: int, base_delay_ms: float, max_delay_ms: float, jitter_ratio: float) -> int:
    """Compute the wait before the attempt following ``attempt``.

    The delay after attempt 1 equals ``base_delay_ms`` and doubles for every
    further attempt, capped at ``max_delay_ms``. A uniform offset of up to
    ``jitter_ratio`` of that value is added in either direction.

    Args:
        attempt: 1-based number of the attempt that just failed
        base_delay_ms: Initial backoff unit
        max_delay_ms: Cap on the exponential term
        jitter_ratio: Randomized fraction, clamped to [0, 1]

    Returns:
        Delay in whole milliseconds, never negative
    """
    try:
        exponential = min(max_delay_ms, base_delay_ms * 2 ** (attempt - 1))
    except OverflowError:
        exponential = max_delay_ms
    jitter = exponential * _clamp(jitter_ratio, 0.0, 1.0)
    offset = random.uniform(-jitter, jitter)
    # half-up rounding, round() would round half to even
    return max(0, math.floor(exponential + offset + 0.5))


def get_error_message(error: Any) -> str:
    """Best-effort human readable message for any failure value."""
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    if isinstance(error, str):
        return error
    try:
        return json.dumps(error)
    except (TypeError, ValueError, RecursionError):
        return "Unknown error"


def _field(value: Any, name: str) -> Any:
    """Read ``name`` from a mapping key or attribute, None when unavailable."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        try:
            return value.get(name)
        except Exception:  # noqa: BLE001
            return None
    try:
        return getattr(value, name, None)
    except Exception:  # noqa: BLE001
        return None


def _cause(error: Any) -> Any:
    cause = _field(error, "cause")
    if cause is None and isinstance(error, BaseException):
        cause = error.__cause__
    return cause


def _first_present(candidates: Iterable[Callable[[], Any]]) -> Any:
    for candidate in candidates:
        value = candidate()
        if value is not None:
            return value
    return None


def extract_status(error: Any) -> Optional[int]:
    """Find an HTTP status code on a failure.

    Looks at ``status``, ``status_code``, ``response.status``,
    ``response.status_code`` and the cause's ``status``, in that order. The
    first field that is present decides; it only counts when it is an int.
    """
    status = _first_present(
        (
            lambda: _field(error, "status"),
            lambda: _field(error, "status_code"),
            lambda: _field(_field(error, "response"), "status"),
            lambda: _field(_field(error, "response"), "status_code"),
            lambda: _field(_cause(error), "status"),
        )
    )
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return None


def _errno_code(error: Any) -> Optional[str]:
    if isinstance(error, socket.gaierror):
        return _GAI_CODES.get(error.errno)
    if isinstance(error, OSError) and isinstance(error.errno, int):
        return errno.errorcode.get(error.errno)
    return None


def extract_code(error: Any) -> Optional[str]:
    """Find a transport error code such as ``ECONNRESET`` on a failure.

    Looks at ``code``, the cause's ``code`` and ``error.code``; for Python
    socket errors without such a field the errno is translated to its
    symbolic name.
    """
    code = _first_present(
        (
            lambda: _field(error, "code"),
            lambda: _field(_cause(error), "code"),
            lambda: _field(_field(error, "error"), "code"),
            lambda: _errno_code(error),
            lambda: _errno_code(_cause(error)),
        )
    )
    return code if isinstance(code, str) else None


def is_abort_error(error: Any) -> bool:
    """True for cancellations of an attempt: any ``AbortError`` or an asyncio timeout."""
    if not isinstance(error, BaseException):
        return False
    if isinstance(error, asyncio.TimeoutError):
        return True
    return any(cls.__name__ == "AbortError" for cls in type(error).__mro__)


def is_retryable_error(error: Any, rules: Optional[RetryableErrorRules] = None) -> bool:
    """Decide whether retrying ``error`` is likely to succeed.

    Checks run from the most structured signal to the least: abort, HTTP
    status, error code, then message substrings. Aborts are retryable by
    default since they usually come from a per-attempt timeout.

    Args:
        error: Any failure value, not necessarily an exception
        rules: Classification tables (defaults to ``DEFAULT_RULES``)

    Returns:
        True if the failure looks transient
    """
    if is_abort_error(error):
        return True

    active = rules or DEFAULT_RULES

    status = extract_status(error)
    if status is not None and status in active.statuses:
        return True

    code = extract_code(error)
    if code and code in active.codes:
        return True

    message = get_error_message(error).lower()
    return any(snippet in message for snippet in active.message_includes)


def _always_retry(error: BaseException) -> bool:
    return True


async def with_retry(
    operation: Callable[[], Any],
    policy: RetryPolicy,
    *,
    sleep_seconds: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """Run ``operation`` until it succeeds or the policy says stop.

    Attempts never overlap. On a terminal failure the original exception is
    re-raised unchanged, so callers can still inspect its status or code.
    The operation must be safe to invoke more than once.

    Args:
        operation: Zero-argument callable returning an awaitable (or a plain value)
        policy: Retry policy for this run
        sleep_seconds: Coroutine function taking seconds, used between attempts

    Returns:
        The operation's result

    Raises:
        Exception: The last failure of the operation
        RetryExhaustedError: If the loop ends without result or failure
    """
    max_attempts = max(1, policy.max_attempts)
    should_retry = policy.should_retry or _always_retry
    delays: Dict[int, int] = {}

    def _retry_condition(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        # task cancellation and interpreter exits are never retried
        if not isinstance(error, Exception):
            return False
        if retry_state.attempt_number >= max_attempts:
            return False
        return bool(should_retry(error))

    def _wait(retry_state: RetryCallState) -> float:
        delay_ms = compute_delay(
            retry_state.attempt_number,
            policy.base_delay_ms,
            policy.max_delay_ms,
            policy.jitter_ratio,
        )
        delays[retry_state.attempt_number] = delay_ms
        return delay_ms / 1000

    def _before_sleep(retry_state: RetryCallState) -> None:
        delay_ms = delays.pop(retry_state.attempt_number, 0)
        if policy.on_retry is None or retry_state.outcome is None:
            return
        try:
            policy.on_retry(retry_state.outcome.exception(), retry_state.attempt_number, delay_ms, max_attempts)
        except Exception:  # noqa: BLE001
            logger.warning("Retry observer raised, continuing with next attempt", exc_info=True)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=_wait,
        retry=_retry_condition,
        before_sleep=_before_sleep,
        reraise=True,
        sleep=sleep_seconds,
    )
    async for attempt in retrying:
        with attempt:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result

    raise RetryExhaustedError("Retry attempts exhausted")


async def with_timeout(awaitable: Awaitable[T], timeout_ms: float) -> T:
    """Await ``awaitable``, aborting it after ``timeout_ms`` milliseconds.

    Raises:
        AbortError: If the deadline passes first
    """
    try:
        return await asyncio.wait_for(awaitable, timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise AbortError(f"The operation was aborted after {timeout_ms}ms") from e


def log_retry(target: logging.Logger, label: str, context: Optional[str] = None) -> OnRetry:
    """Create an ``on_retry`` observer that logs each scheduled retry.

    Args:
        target: Logger to write to
        label: Short tag for the caller, e.g. provider name
        context: Optional operation name appended to the tag

    Returns:
        Observer suitable for ``RetryPolicy.on_retry``
    """
    prefix = f"[{label}] {context} " if context else f"[{label}] "

    def _on_retry(error: BaseException, attempt: int, delay_ms: int, max_attempts: int) -> None:
        target.warning(f"{prefix}retry {attempt}/{max_attempts} in {delay_ms}ms: {get_error_message(error)}")

    return _on_retry
