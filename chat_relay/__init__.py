"""Restaurant chat relay.

A thin proxy in front of an OpenAI-compatible chat-completions API. It keeps a
short rolling history per conversation, prepends a food-recommender persona
with restaurant context supplied by the client, and relays replies either
whole or as the upstream event stream. ``chat_relay.api.create_app`` builds
the HTTP service; ``chat_relay.service.RelayService`` can be used directly and
``chat_relay.client.RelayClient`` talks to a running relay.
"""

from .config import RelayConfig, UpstreamConfig, load_config
from .service import RelayService
from .store import ConversationStore, InMemoryBackend

__all__ = [
    "ConversationStore",
    "InMemoryBackend",
    "RelayConfig",
    "RelayService",
    "UpstreamConfig",
    "load_config",
]
