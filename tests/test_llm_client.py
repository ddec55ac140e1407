from __future__ import annotations

import pytest
import requests

from chat_relay import llm_client
from chat_relay.config import UpstreamConfig
from chat_relay.errors import ErrorCode, MissingAPIKeyError, UpstreamError, UpstreamUnavailableError
from chat_relay.llm_client import ChatLLMClient

from conftest import FakeResponse, completion


def _client() -> ChatLLMClient:
    return ChatLLMClient(UpstreamConfig(endpoint="http://upstream.test/v1/chat/completions", api_key="sk-test"))


def test_requires_api_key():
    with pytest.raises(MissingAPIKeyError):
        ChatLLMClient(UpstreamConfig(api_key=""))


def test_send_posts_with_bearer_auth(monkeypatch: pytest.MonkeyPatch):
    seen = {}

    def fake_post(url, **kwargs):
        seen["url"] = url
        seen.update(kwargs)
        return FakeResponse(json_body=completion("hi"))

    monkeypatch.setattr(llm_client.requests, "post", fake_post)
    payload = {"model": "m", "messages": [{"role": "user", "content": "x"}], "stream": True}
    response = _client().send(payload)

    assert response.json()["choices"][0]["message"]["content"] == "hi"
    assert seen["url"] == "http://upstream.test/v1/chat/completions"
    assert seen["headers"]["Authorization"] == "Bearer sk-test"
    assert seen["json"] == payload
    assert seen["stream"] is True
    assert seen["timeout"] is None


@pytest.mark.parametrize(
    "status, code",
    [(401, ErrorCode.UPSTREAM_AUTH), (429, ErrorCode.UPSTREAM_RATE_LIMITED), (500, ErrorCode.UPSTREAM_ERROR)],
)
def test_error_status_keeps_body(monkeypatch: pytest.MonkeyPatch, status, code):
    failed = FakeResponse(status, text="upstream says no")
    monkeypatch.setattr(llm_client.requests, "post", lambda url, **kw: failed)
    with pytest.raises(UpstreamError) as info:
        _client().send({"messages": []})
    assert info.value.status_code == status
    assert info.value.code is code
    assert info.value.details == "upstream says no"
    assert failed.closed


def test_connection_failure(monkeypatch: pytest.MonkeyPatch):
    def boom(url, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(llm_client.requests, "post", boom)
    with pytest.raises(UpstreamUnavailableError) as info:
        _client().send({"messages": []})
    assert info.value.status_code == 502
    assert info.value.code is ErrorCode.UPSTREAM_UNREACHABLE
