from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import server
from chat_relay.api import create_app
from chat_relay.config import RelayConfig, UpstreamConfig

from conftest import FakeResponse, completion

HI_STREAM = [b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n', b"data: [DONE]\n\n"]


def test_health(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {
        "status": "ok",
        "upstreamKeyLoaded": True,
        "openaiKeyLoaded": True,
        "conversationsActive": 0,
    }


def test_health_under_api_prefix_reports_openai_key_flag(upstream):
    config = RelayConfig(upstream=UpstreamConfig(api_key="k"), api_prefix="/api", uploads_dir=None)
    client = TestClient(create_app(config, client=upstream))
    assert client.get("/api/health").json()["openaiKeyLoaded"] is True


def test_chat_roundtrip_returns_conversation_id(client: TestClient, upstream, store):
    upstream.queue(FakeResponse(json_body=completion("Try Pho Thin!")))
    r = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert r.status_code == 200
    body = r.json()
    conv_id = body["conversationId"]
    assert body["choices"][0]["message"]["content"] == "Try Pho Thin!"
    assert len(upstream.payloads[0]["messages"]) == 2
    assert store.get(conv_id) == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "Try Pho Thin!"},
    ]


def test_restaurant_data_reaches_system_prompt(client: TestClient, upstream):
    r = client.post(
        "/chat",
        json={
            "messages": [{"role": "user", "content": "pho?"}],
            "restaurantData": [
                {
                    "restaurant": "Pho Thin",
                    "location": "13 Lo Duc",
                    "foodType": ["Pho"],
                    "foodMenu": ["Pho bo"],
                    "stars": 4.5,
                    "reviews": ["Great", "Cheap", "Loud"],
                }
            ],
        },
    )
    assert r.status_code == 200
    system = upstream.payloads[0]["messages"][0]["content"]
    assert "Pho Thin (13 Lo Duc): Pho bo - 4.5⭐ - Reviews: Great; Cheap" in system


def test_streaming_relays_bytes_and_sets_header(client: TestClient, upstream, store):
    upstream.queue(FakeResponse(chunks=HI_STREAM))
    r = client.post(
        "/chat",
        json={"messages": [{"role": "user", "content": "hello"}], "stream": True, "conversationId": "conv_a"},
    )
    assert r.status_code == 200
    assert r.headers["x-conversation-id"] == "conv_a"
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache"
    assert r.content == b"".join(HI_STREAM)
    assert store.get("conv_a")[-1] == {"role": "assistant", "content": "Hi"}


def test_history_is_capped_over_many_exchanges(client: TestClient):
    for n in range(12):
        r = client.post("/chat", json={"messages": [{"role": "user", "content": f"q{n}"}], "conversationId": "c"})
        assert r.status_code == 200
    history = client.get("/conversation/c").json()
    assert history["messageCount"] == 20
    assert history["messages"][0] == {"role": "user", "content": "q2"}


def test_upstream_error_passes_through(client: TestClient, upstream):
    upstream.queue(FakeResponse(401, text='{"error": {"message": "Incorrect API key"}}'))
    r = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert r.status_code == 401
    body = r.json()
    assert body["code"] == "upstream_auth"
    assert body["error"] == "Upstream API error: 401"
    assert body["details"] == '{"error": {"message": "Incorrect API key"}}'


@pytest.mark.parametrize(
    "choices",
    [[None], [{"message": None}], [{"message": "plain text"}], "not-a-list", []],
)
def test_odd_completion_body_is_relayed_without_storing(client: TestClient, upstream, store, choices):
    upstream.queue(FakeResponse(json_body={"id": "x", "choices": choices}))
    r = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}], "conversationId": "odd"})
    assert r.status_code == 200
    assert r.json() == {"id": "x", "choices": choices, "conversationId": "odd"}
    assert store.get("odd") == []


def test_zero_or_missing_max_tokens_uses_default(client: TestClient, upstream):
    client.post("/chat", json={"messages": [{"role": "user", "content": "a"}], "max_tokens": 0})
    client.post("/chat", json={"messages": [{"role": "user", "content": "b"}], "temperature": 3.5})
    assert upstream.payloads[0]["max_tokens"] == 500
    assert upstream.payloads[1]["temperature"] == 3.5


def test_invalid_request_has_error_code(client: TestClient):
    r = client.post("/chat", json={"messages": []})
    assert r.status_code == 422
    assert r.json()["code"] == "bad_request"


def test_conversation_endpoints(client: TestClient, upstream):
    client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}], "conversationId": "c1"})

    listing = client.get("/conversations").json()
    assert listing == [{"id": "c1", "messageCount": 2, "lastMessage": "ok..."}]
    assert client.get("/health").json()["conversationsActive"] == 1

    r = client.delete("/conversation/c1")
    assert r.json() == {"success": True, "message": "Conversation cleared"}
    assert client.get("/conversation/c1").json() == {"conversationId": "c1", "messages": [], "messageCount": 0}


def test_unknown_conversation_is_empty(client: TestClient):
    assert client.get("/conversation/nope").json()["messageCount"] == 0


def test_api_prefix(upstream):
    config = RelayConfig(upstream=UpstreamConfig(api_key="k"), api_prefix="/api/", uploads_dir=None)
    client = TestClient(create_app(config, client=upstream))
    assert client.get("/api/health").status_code == 200
    assert client.get("/health").status_code == 404


def test_uploads_are_served(tmp_path: Path, upstream):
    (tmp_path / "download.csv").write_text("Restaurant\nPho Thin\n", encoding="utf-8")
    config = RelayConfig(upstream=UpstreamConfig(api_key="k"), uploads_dir=str(tmp_path))
    client = TestClient(create_app(config, client=upstream))
    r = client.get("/uploads/download.csv")
    assert r.status_code == 200
    assert "Pho Thin" in r.text


def test_main_exits_without_api_key(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    calls = []
    monkeypatch.setattr(server.uvicorn, "run", lambda *a, **kw: calls.append((a, kw)))
    with pytest.raises(SystemExit) as info:
        server.main(["--env_file", str(tmp_path / "missing.env")])
    assert info.value.code == 1
    assert calls == []


def test_main_starts_with_api_key(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_API_KEY=sk-test\n", encoding="utf-8")
    calls = []
    monkeypatch.setattr(server.uvicorn, "run", lambda app, **kw: calls.append(kw))
    server.main(["--env_file", str(env_file), "--port", "5123", "--uploads_dir", str(tmp_path / "none")])
    assert calls == [{"host": "0.0.0.0", "port": 5123}]


def test_main_reads_port_from_env_file(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_API_KEY=sk-test\nPORT=5050\n", encoding="utf-8")
    calls = []
    monkeypatch.setattr(server.uvicorn, "run", lambda app, **kw: calls.append(kw))
    server.main(["--env_file", str(env_file), "--uploads_dir", str(tmp_path / "none")])
    assert calls == [{"host": "0.0.0.0", "port": 5050}]


def test_main_rejects_non_integer_port(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("PORT", "http")
    calls = []
    monkeypatch.setattr(server.uvicorn, "run", lambda *a, **kw: calls.append(kw))
    with pytest.raises(SystemExit) as info:
        server.main(["--env_file", str(tmp_path / "missing.env"), "--uploads_dir", str(tmp_path / "none")])
    assert info.value.code == 1
    assert calls == []
