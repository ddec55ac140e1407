"""Conversation history store with pluggable backing."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .utils import preview

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 20


@runtime_checkable
class ConversationBackend(Protocol):
    """Storage contract for conversation histories."""

    def load(self, conversation_id: str) -> Optional[List[Dict[str, str]]]:
        """Return the stored history, or ``None`` for an unknown id."""
        ...

    def save(self, conversation_id: str, messages: List[Dict[str, str]]) -> None:
        ...

    def delete(self, conversation_id: str) -> bool:
        ...

    def keys(self) -> Iterable[str]:
        ...


class InMemoryBackend:
    """Volatile dict-backed storage; everything is lost on restart."""

    def __init__(self) -> None:
        self._data: Dict[str, List[Dict[str, str]]] = {}

    def load(self, conversation_id: str) -> Optional[List[Dict[str, str]]]:
        messages = self._data.get(conversation_id)
        return list(messages) if messages is not None else None

    def save(self, conversation_id: str, messages: List[Dict[str, str]]) -> None:
        self._data[conversation_id] = list(messages)

    def delete(self, conversation_id: str) -> bool:
        return self._data.pop(conversation_id, None) is not None

    def keys(self) -> Iterable[str]:
        return list(self._data.keys())


class ConversationStore:
    """Ordered per-conversation message histories capped at ``max_messages``.

    Mutations are serialised by a single lock so that the user/assistant pair
    of one exchange is committed as a unit, even when two requests share a
    conversation id.
    """

    def __init__(
        self,
        backend: Optional[ConversationBackend] = None,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
    ) -> None:
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self.backend = backend if backend is not None else InMemoryBackend()
        self.max_messages = max_messages
        self._lock = threading.RLock()

    def __contains__(self, conversation_id: object) -> bool:
        return isinstance(conversation_id, str) and self.backend.load(conversation_id) is not None

    def count(self) -> int:
        return len(list(self.backend.keys()))

    def get(self, conversation_id: str) -> List[Dict[str, str]]:
        """Return a copy of the history; unknown ids yield an empty list."""
        return list(self.backend.load(conversation_id) or [])

    def ensure(self, conversation_id: str) -> List[Dict[str, str]]:
        with self._lock:
            messages = self.backend.load(conversation_id)
            if messages is None:
                messages = []
                self.backend.save(conversation_id, messages)
                logger.debug("Created conversation %s", conversation_id)
            return list(messages)

    def append(self, conversation_id: str, message: Dict[str, str]) -> None:
        entry = _normalise(message)
        with self._lock:
            messages = self.backend.load(conversation_id) or []
            messages.append(entry)
            self.backend.save(conversation_id, messages)

    def trim(self, conversation_id: str) -> int:
        """Drop the oldest messages beyond ``max_messages``; return how many were removed."""
        with self._lock:
            messages = self.backend.load(conversation_id)
            if not messages or len(messages) <= self.max_messages:
                return 0
            removed = len(messages) - self.max_messages
            self.backend.save(conversation_id, messages[-self.max_messages :])
            return removed

    def record_exchange(
        self,
        conversation_id: str,
        user_message: Dict[str, str],
        assistant_message: Dict[str, str],
    ) -> int:
        """Append one user and one assistant message, trim, and return the new length."""
        with self._lock:
            self.append(conversation_id, user_message)
            self.append(conversation_id, assistant_message)
            self.trim(conversation_id)
            size = len(self.get(conversation_id))
        logger.info("Saved conversation %s: %d messages", conversation_id, size)
        return size

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            removed = self.backend.delete(conversation_id)
        if removed:
            logger.info("Cleared conversation %s", conversation_id)
        return removed

    def list(self) -> List[Dict[str, object]]:
        """Return lightweight conversation summaries."""
        payload = []
        for conversation_id in self.backend.keys():
            messages = self.get(conversation_id)
            last_content = messages[-1].get("content") if messages else ""
            payload.append(
                {
                    "id": conversation_id,
                    "messageCount": len(messages),
                    "lastMessage": preview(last_content) or "Empty",
                }
            )
        return payload


def _normalise(message: Dict[str, str]) -> Dict[str, str]:
    role = message.get("role")
    if role not in ("system", "user", "assistant"):
        raise ValueError(f"Unsupported message role: {role!r}")
    return {"role": role, "content": str(message.get("content") or "")}
