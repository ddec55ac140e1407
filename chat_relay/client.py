"""HTTP client for talking to a running chat relay."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterator, List, Optional

import requests

from .errors import ErrorCode, RelayClientError
from .stream_parser import StreamContentParser

logger = logging.getLogger(__name__)

CONVERSATION_HEADER = "X-Conversation-Id"


class RelayClient:
    """Keeps the conversation id client-side and attaches restaurant data to each turn."""

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        *,
        api_prefix: str = "",
        restaurants: Optional[List[Dict[str, Any]]] = None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1024,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        prefix = api_prefix.strip("/")
        self.base_url = base_url.rstrip("/") + (f"/{prefix}" if prefix else "")
        self.restaurants = restaurants or []
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.session = session or requests.Session()
        self.conversation_id: Optional[str] = None

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health", timeout=self.timeout or 5).json()

    def wait_until_ready(self, attempts: int = 10, interval: float = 1.0) -> Dict[str, Any]:
        """Poll ``/health`` until the relay is up with an upstream key loaded."""
        last_error: Optional[RelayClientError] = None
        for attempt in range(1, max(attempts, 1) + 1):
            try:
                status = self.health()
            except RelayClientError as exc:
                if exc.code is not ErrorCode.BACKEND_UNREACHABLE:
                    raise
                last_error = exc
                logger.debug("Relay not reachable (attempt %d/%d)", attempt, attempts)
                if attempt < attempts:
                    time.sleep(interval)
                continue
            if not status.get("upstreamKeyLoaded"):
                raise RelayClientError("Relay has no upstream API key loaded", code=ErrorCode.MISSING_API_KEY)
            return status
        raise last_error or RelayClientError("Relay is not reachable", code=ErrorCode.BACKEND_UNREACHABLE)

    def send(self, text: str, *, stream: bool = True) -> Iterator[str]:
        """Send one user message and yield the reply as it arrives."""
        if not text or not text.strip():
            raise ValueError("message must not be empty")
        body = {
            "messages": [{"role": "user", "content": text}],
            "conversationId": self.conversation_id,
            "restaurantData": self.restaurants,
            "stream": stream,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "model": self.model,
        }
        response = self._request("POST", "/chat", json=body, stream=stream)
        if not stream:
            data = response.json()
            self._adopt(data.get("conversationId"))
            choice = (data.get("choices") or [{}])[0]
            content = (choice.get("message") or {}).get("content") or ""
            if content:
                yield content
            return

        self._adopt(response.headers.get(CONVERSATION_HEADER))
        parser = StreamContentParser()
        try:
            for chunk in response.iter_content(chunk_size=None):
                yield from parser.feed(chunk)
            yield from parser.close()
        finally:
            response.close()

    def history(self) -> List[Dict[str, str]]:
        if not self.conversation_id:
            return []
        return self._request("GET", f"/conversation/{self.conversation_id}").json().get("messages", [])

    def clear(self) -> None:
        """Delete the server-side history and start a fresh conversation."""
        if self.conversation_id:
            self._request("DELETE", f"/conversation/{self.conversation_id}")
            logger.info("Cleared conversation %s", self.conversation_id)
        self.conversation_id = None

    def _adopt(self, conversation_id: Optional[str]) -> None:
        if conversation_id and not self.conversation_id:
            self.conversation_id = conversation_id
            logger.info("New conversation id: %s", conversation_id)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, self.base_url + path, **kwargs)
        except requests.RequestException as exc:
            raise RelayClientError(
                f"Cannot connect to the relay at {self.base_url}",
                code=ErrorCode.BACKEND_UNREACHABLE,
                details=str(exc),
            ) from exc
        if not response.ok:
            raise _error_from_response(response)
        return response


def _error_from_response(response: requests.Response) -> RelayClientError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    try:
        code = ErrorCode(payload.get("code"))
    except ValueError:
        code = ErrorCode.INTERNAL
    message = payload.get("error") or f"Relay error {response.status_code}"
    return RelayClientError(message, code=code, status_code=response.status_code, details=payload.get("details"))
