"""Tests for retryable error classification"""

from __future__ import annotations

import asyncio
import errno
import socket

import pytest
import requests

from mealmind.domain.config.classification import ClassificationConfig
from mealmind.infrastructure.retry import (
    DEFAULT_RULES,
    AbortError,
    RetryableErrorRules,
    extract_code,
    extract_status,
    get_error_message,
    is_abort_error,
    is_retryable_error,
    rules_from_config,
)


class _ApiError(Exception):
    def __init__(self, message: str = "", **fields):
        super().__init__(message)
        for name, value in fields.items():
            setattr(self, name, value)


class _ExplodingStatus(Exception):
    @property
    def status(self):
        raise RuntimeError("no status here")


def _http_error(status_code: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status_code
    return requests.HTTPError(f"{status_code} Error", response=response)


class TestStatusClassification:
    def test_rate_limited_status_is_retryable(self):
        assert is_retryable_error(_ApiError("Too Many Requests", status=429)) is True

    def test_not_found_status_is_not_retryable(self):
        assert is_retryable_error(_ApiError("Not Found", status=404)) is False

    def test_status_code_field(self):
        assert is_retryable_error(_ApiError("Bad Gateway", status_code=502)) is True

    def test_requests_http_error_uses_response_status(self):
        """A 5xx Response is falsy, the status must still be read"""
        assert is_retryable_error(_http_error(503)) is True
        assert is_retryable_error(_http_error(401)) is False

    def test_nested_cause_status(self):
        error = _ApiError("wrapped", cause=_ApiError("upstream", status=500))
        assert is_retryable_error(error) is True

    def test_exception_chain_cause_status(self):
        error = ValueError("provider failed")
        error.__cause__ = _ApiError("upstream", status=504)
        assert is_retryable_error(error) is True

    def test_string_status_is_ignored(self):
        assert extract_status(_ApiError("boom", status="429")) is None
        assert is_retryable_error(_ApiError("boom", status="429")) is False

    def test_bool_status_is_ignored(self):
        assert extract_status(_ApiError("boom", status=True)) is None

    def test_mapping_failure(self):
        assert is_retryable_error({"status": 429}) is True
        assert is_retryable_error({"response": {"status": 503}}) is True
        assert is_retryable_error({"status": 400}) is False

    def test_status_lookup_that_raises_is_tolerated(self):
        assert extract_status(_ExplodingStatus("boom")) is None
        assert is_retryable_error(_ExplodingStatus("boom")) is False


class TestCodeClassification:
    def test_connection_reset_code_without_status(self):
        assert is_retryable_error(_ApiError("boom", code="ECONNRESET")) is True

    def test_code_checked_when_status_not_retryable(self):
        assert is_retryable_error(_ApiError("boom", status=400, code="ETIMEDOUT")) is True

    def test_nested_error_code(self):
        assert is_retryable_error({"error": {"code": "EAI_AGAIN"}}) is True

    def test_cause_code(self):
        assert extract_code(_ApiError("boom", cause={"code": "ENETUNREACH"})) == "ENETUNREACH"

    def test_unknown_code(self):
        assert is_retryable_error(_ApiError("boom", code="EACCES")) is False

    def test_non_string_code_is_ignored(self):
        assert extract_code(_ApiError("boom", code=104)) is None

    def test_os_error_errno(self):
        error = ConnectionResetError(errno.ECONNRESET, "reset by peer")
        assert extract_code(error) == "ECONNRESET"
        assert is_retryable_error(error) is True

    @pytest.mark.skipif(not hasattr(socket, "EAI_AGAIN"), reason="platform has no EAI_AGAIN")
    def test_dns_failure(self):
        error = socket.gaierror(socket.EAI_AGAIN, "Temporary failure in name resolution")
        assert extract_code(error) == "EAI_AGAIN"
        assert is_retryable_error(error) is True


class TestMessageClassification:
    def test_timeout_message_is_retryable(self):
        assert is_retryable_error(Exception("Request timeout while connecting")) is True

    def test_invalid_key_message_is_not_retryable(self):
        assert is_retryable_error(Exception("Invalid API key")) is False

    def test_message_match_is_case_insensitive(self):
        assert is_retryable_error(RuntimeError("Service Temporarily Unavailable")) is True

    def test_plain_string_failure(self):
        assert is_retryable_error("socket hang up") is True
        assert is_retryable_error("bad input") is False

    def test_unrenderable_failure(self):
        assert is_retryable_error(object()) is False

    def test_number_failure(self):
        assert is_retryable_error(42) is False

    def test_none_failure(self):
        assert is_retryable_error(None) is False


class TestAbortClassification:
    def test_abort_error_is_retryable(self):
        assert is_retryable_error(AbortError("aborted")) is True

    def test_foreign_abort_error_by_name(self):
        class AbortError(Exception):
            pass

        assert is_abort_error(AbortError()) is True
        assert is_retryable_error(AbortError()) is True

    def test_asyncio_timeout_is_abort(self):
        assert is_abort_error(asyncio.TimeoutError()) is True

    def test_regular_error_is_not_abort(self):
        assert is_abort_error(ValueError("x")) is False
        assert is_abort_error("AbortError") is False


class TestCustomRules:
    def test_custom_statuses_replace_defaults(self):
        rules = RetryableErrorRules(statuses=frozenset({404}))
        assert is_retryable_error(_ApiError("", status=404), rules) is True
        assert is_retryable_error(_ApiError("", status=429), rules) is False

    def test_rules_from_config_keeps_unset_sections(self):
        rules = rules_from_config(ClassificationConfig(codes=["EPIPE"]))
        assert rules.statuses == DEFAULT_RULES.statuses
        assert rules.codes == frozenset({"EPIPE"})
        assert rules.message_includes == DEFAULT_RULES.message_includes

    def test_rules_from_config_lowercases_messages(self):
        rules = rules_from_config(ClassificationConfig(message_includes=["Overloaded"]))
        assert is_retryable_error(Exception("model OVERLOADED"), rules) is True

    def test_rules_from_none(self):
        assert rules_from_config(None) is DEFAULT_RULES


def test_classification_is_stable_across_calls():
    error = _ApiError("upstream hiccup", status=503)
    assert is_retryable_error(error) == is_retryable_error(error)
    assert error.status == 503


class TestGetErrorMessage:
    def test_exception_message(self):
        assert get_error_message(ValueError("bad value")) == "bad value"

    def test_exception_without_message_uses_name(self):
        assert get_error_message(ValueError()) == "ValueError"

    def test_string(self):
        assert get_error_message("plain") == "plain"

    def test_json_rendering(self):
        assert get_error_message({"status": 500}) == '{"status": 500}'

    def test_rendering_failure(self):
        assert get_error_message(object()) == "Unknown error"
