"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure the project root is on the import path (for local runs without installing)
ROOT_PATH = Path(__file__).resolve().parent.parent
if str(ROOT_PATH) not in sys.path:
    sys.path.insert(0, str(ROOT_PATH))

from chat_relay.api import create_app  # noqa: E402
from chat_relay.config import RelayConfig, UpstreamConfig  # noqa: E402
from chat_relay.errors import UpstreamError  # noqa: E402
from chat_relay.store import ConversationStore  # noqa: E402


class FakeResponse:
    """Stands in for :class:`requests.Response`."""

    def __init__(
        self,
        status_code: int = 200,
        *,
        json_body: Any = None,
        chunks: Optional[Iterable[bytes]] = None,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.status_code = status_code
        self._json = json_body
        self._chunks = list(chunks or [])
        self.text = text
        self.headers = headers or {}
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def iter_content(self, chunk_size=None):
        yield from self._chunks

    def close(self) -> None:
        self.closed = True


class FakeUpstream:
    """Records payloads and answers with queued responses, like ChatLLMClient.send."""

    def __init__(self) -> None:
        self.payloads: List[Dict[str, Any]] = []
        self.responses: List[FakeResponse] = []

    def queue(self, response: FakeResponse) -> FakeResponse:
        self.responses.append(response)
        return response

    def send(self, payload: Dict[str, Any]) -> FakeResponse:
        self.payloads.append(copy.deepcopy(payload))
        response = self.responses.pop(0) if self.responses else FakeResponse(json_body=completion("ok"))
        if not response.ok:
            raise UpstreamError(response.status_code, response.text)
        return response


def completion(content: str) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(upstream=UpstreamConfig(api_key="test-key"), uploads_dir=None)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def client(relay_config: RelayConfig, upstream: FakeUpstream, store: ConversationStore) -> TestClient:
    app = create_app(relay_config, client=upstream, store=store)
    return TestClient(app)


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars).

    Setting before deleting makes monkeypatch also undo values a test loads
    from a .env file.
    """
    for var in ["OPENAI_API_KEY", "UPSTREAM_ENDPOINT", "UPSTREAM_MODEL", "UPSTREAM_TIMEOUT", "PORT"]:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    yield
