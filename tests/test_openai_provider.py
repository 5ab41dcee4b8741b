"""Tests for OpenAIProvider"""

from __future__ import annotations

import asyncio
import json

import pytest
import requests

from mealmind.infrastructure.llm.base import LLMProviderError
from mealmind.infrastructure.llm.openai import OpenAIProvider

FAST_RETRY = {"max_attempts": 3, "base_delay_ms": 0, "max_delay_ms": 0, "jitter_ratio": 0}


def _make_response(status_code: int, payload: dict | None = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status_code
    r.url = OpenAIProvider.API_URL
    r.reason = "Test"
    r._content = json.dumps(payload or {}).encode("utf-8")  # type: ignore[attr-defined]
    r.headers["Content-Type"] = "application/json"
    return r


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def provider():
    return OpenAIProvider({"api_key": "sk-test", **FAST_RETRY})


def test_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        OpenAIProvider({})


def test_api_key_from_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    assert OpenAIProvider().api_key == "sk-env"


def test_invalid_temperature():
    with pytest.raises(ValueError, match="temperature"):
        OpenAIProvider({"api_key": "sk-test", "temperature": 5})


def test_generate_text(monkeypatch, provider):
    captured = {}

    def fake_post(url, **kwargs):
        captured["url"] = url
        captured.update(kwargs)
        return _make_response(200, _completion("  Hello there  "))

    monkeypatch.setattr(requests, "post", fake_post)

    assert asyncio.run(provider.generate_text("hi")) == "Hello there"
    assert captured["url"] == OpenAIProvider.API_URL
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    assert captured["json"]["model"] == "gpt-4o-mini"
    assert captured["json"]["messages"] == [{"role": "user", "content": "hi"}]
    assert captured["timeout"] == 60


def test_generate_json(monkeypatch, provider):
    captured = {}

    def fake_post(url, **kwargs):
        captured.update(kwargs)
        return _make_response(200, _completion('{"items": ["eggs"]}'))

    monkeypatch.setattr(requests, "post", fake_post)

    result = asyncio.run(provider.generate_json("You sort groceries.", "eggs"))
    assert result == {"items": ["eggs"]}
    assert captured["json"]["messages"][0] == {"role": "system", "content": "You sort groceries."}
    assert captured["json"]["response_format"] == {"type": "json_object"}


def test_generate_json_rejects_invalid_json(monkeypatch, provider):
    monkeypatch.setattr(requests, "post", lambda *a, **k: _make_response(200, _completion("not json")))

    with pytest.raises(LLMProviderError, match="not valid JSON"):
        asyncio.run(provider.generate_json("system", "user"))


def test_generate_json_rejects_non_object(monkeypatch, provider):
    monkeypatch.setattr(requests, "post", lambda *a, **k: _make_response(200, _completion("[1, 2]")))

    with pytest.raises(LLMProviderError, match="not a JSON object"):
        asyncio.run(provider.generate_json("system", "user"))


def test_empty_response(monkeypatch, provider):
    monkeypatch.setattr(requests, "post", lambda *a, **k: _make_response(200, {"choices": []}))

    with pytest.raises(LLMProviderError, match="OpenAI returned empty response"):
        asyncio.run(provider.generate_text("hi"))


def test_rate_limit_is_retried(monkeypatch, provider):
    responses = [_make_response(429, {"error": {"message": "slow down"}}), _make_response(200, _completion("ok"))]
    monkeypatch.setattr(requests, "post", lambda *a, **k: responses.pop(0))

    assert asyncio.run(provider.generate_text("hi")) == "ok"
    assert responses == []


def test_client_error_is_not_retried(monkeypatch, provider):
    calls = {"n": 0}

    def fake_post(*args, **kwargs):
        calls["n"] += 1
        return _make_response(400, {"error": {"message": "bad request"}})

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(LLMProviderError) as excinfo:
        asyncio.run(provider.generate_text("hi"))

    assert calls["n"] == 1
    assert excinfo.value.status == 400
    assert str(excinfo.value).startswith("OpenAI API failed: ")
    assert isinstance(excinfo.value.__cause__, requests.HTTPError)


def test_custom_classification_from_config(monkeypatch):
    provider = OpenAIProvider({"api_key": "sk-test", **FAST_RETRY, "classification": {"statuses": [400]}})
    responses = [_make_response(400), _make_response(200, _completion("ok"))]
    monkeypatch.setattr(requests, "post", lambda *a, **k: responses.pop(0))

    assert asyncio.run(provider.generate_text("hi")) == "ok"


def test_get_name(provider):
    assert provider.get_name() == "openai"
