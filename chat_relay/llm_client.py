"""Client wrapper for the upstream chat-completions API."""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from .config import UpstreamConfig
from .errors import MissingAPIKeyError, UpstreamError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class ChatLLMClient:
    """Thin wrapper around a chat-completions endpoint with streaming support."""

    def __init__(self, config: UpstreamConfig) -> None:
        if not config.api_key:
            raise MissingAPIKeyError("Upstream API key is not configured (set OPENAI_API_KEY)")
        self.config = config

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def send(self, payload: Dict[str, Any]) -> requests.Response:
        """POST the payload and return the open response.

        Streaming payloads leave the body unread so the caller can relay it
        chunk by chunk; the caller is responsible for closing the response.
        """
        stream = bool(payload.get("stream"))
        logger.info(
            "Sending %s request to %s with %d message(s)",
            "streaming" if stream else "non-streaming",
            self.config.endpoint,
            len(payload.get("messages") or []),
        )
        try:
            response = requests.post(
                self.config.endpoint,
                headers=self.headers,
                json=payload,
                stream=stream,
                timeout=self.config.request_timeout,
            )
        except requests.RequestException as exc:
            logger.error("Upstream request to %s failed: %s", self.config.endpoint, exc)
            raise UpstreamUnavailableError(f"Upstream API unreachable: {exc}") from exc

        if not response.ok:
            body = response.text
            response.close()
            logger.error("Upstream API error %d: %s", response.status_code, body)
            raise UpstreamError(response.status_code, body)
        return response
