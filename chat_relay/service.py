"""High level orchestration for relaying chats with history and restaurant context."""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from .config import RelayConfig
from .errors import ErrorCode, RelayError
from .llm_client import ChatLLMClient
from .prompt import RestaurantRecord, build_messages, build_system_prompt
from .store import ConversationStore
from .stream_parser import StreamContentParser
from .utils import preview

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_conversation_id() -> str:
    """Return an id of the form ``conv_<epoch ms>_<9 base36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"conv_{int(time.time() * 1000)}_{suffix}"


@dataclass
class RelayResult:
    """Outcome of one relayed exchange: either a JSON body or a byte stream."""

    conversation_id: str
    body: Optional[Dict[str, Any]] = None
    chunks: Optional[Iterator[bytes]] = None

    @property
    def streaming(self) -> bool:
        return self.chunks is not None


class RelayService:
    """Core relay used by the HTTP app and by direct Python consumers."""

    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        *,
        client: Optional[ChatLLMClient] = None,
        store: Optional[ConversationStore] = None,
    ) -> None:
        self.config = config or RelayConfig()
        self.client = client or ChatLLMClient(self.config.upstream)
        self.store = store or ConversationStore(max_messages=self.config.max_history_messages)

    def chat(
        self,
        messages: Sequence[Dict[str, str]],
        *,
        conversation_id: Optional[str] = None,
        restaurants: Optional[Sequence[RestaurantRecord]] = None,
        stream: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> RelayResult:
        """Forward one user turn upstream and return the reply to relay."""
        if not messages:
            raise ValueError("messages must contain at least one entry")

        conv_id = conversation_id or new_conversation_id()
        history = self.store.ensure(conv_id)
        turn = [msg for msg in messages if msg.get("role") != "system"]
        user_message = turn[-1] if turn else None

        logger.info("Conversation %s: %d previous messages", conv_id, len(history))
        logger.info("Restaurant data: %d restaurants", len(restaurants or []))
        if user_message:
            logger.info("New message: %s", preview(user_message.get("content")))

        system_prompt = build_system_prompt(self.config, restaurants)
        payload = {
            "model": model or self.config.default_model,
            "messages": build_messages(system_prompt, history, messages),
            "stream": bool(stream),
            "max_tokens": max_tokens or self.config.default_max_tokens,
            "temperature": temperature if temperature is not None else self.config.default_temperature,
        }

        response = self.client.send(payload)
        if stream:
            return RelayResult(conv_id, chunks=self._relay_stream(conv_id, user_message, response))

        try:
            data = response.json()
        except ValueError as exc:
            raise RelayError(
                "Upstream API returned invalid JSON",
                code=ErrorCode.UPSTREAM_ERROR,
                status_code=502,
                details=response.text,
            ) from exc
        finally:
            response.close()
        if not isinstance(data, dict):
            raise RelayError("Upstream API returned an unexpected body", code=ErrorCode.UPSTREAM_ERROR, status_code=502)

        self._commit(conv_id, user_message, _reply_message(data))
        return RelayResult(conv_id, body={**data, "conversationId": conv_id})

    def get_history(self, conversation_id: str) -> Dict[str, object]:
        messages = self.store.get(conversation_id)
        return {"conversationId": conversation_id, "messages": messages, "messageCount": len(messages)}

    def clear(self, conversation_id: str) -> bool:
        return self.store.delete(conversation_id)

    def list_conversations(self) -> List[Dict[str, object]]:
        return self.store.list()

    def _relay_stream(
        self,
        conversation_id: str,
        user_message: Optional[Dict[str, str]],
        response: requests.Response,
    ) -> Iterator[bytes]:
        parser = StreamContentParser()
        try:
            for chunk in response.iter_content(chunk_size=None):
                if not chunk:
                    continue
                parser.feed(chunk)
                yield chunk
            parser.close()
        finally:
            response.close()

        self._commit(conversation_id, user_message, {"role": "assistant", "content": parser.text})

    def _commit(
        self,
        conversation_id: str,
        user_message: Optional[Dict[str, str]],
        assistant_message: Optional[Dict[str, Any]],
    ) -> None:
        if not user_message or not assistant_message or not assistant_message.get("content"):
            logger.info("Nothing to store for conversation %s", conversation_id)
            return
        self.store.record_exchange(
            conversation_id,
            user_message,
            {"role": "assistant", "content": assistant_message["content"]},
        )


def _reply_message(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """``choices[0].message`` of a completion body, or ``None`` when it is not shaped that way."""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    message = choice.get("message")
    return message if isinstance(message, dict) else None
