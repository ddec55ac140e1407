"""Configuration objects for the chat relay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, List, Optional

from dotenv import load_dotenv


@dataclass
class UpstreamConfig:
    """Upstream chat-completions connection details."""

    endpoint: str = "https://api.openai.com/v1/chat/completions"
    api_key: Optional[str] = None
    # None waits on the upstream indefinitely.
    request_timeout: Optional[float] = None


@dataclass
class RelayConfig:
    """Runtime controls for relay behaviour."""

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    default_model: str = "gpt-4o-mini"
    default_max_tokens: int = 500
    default_temperature: float = 0.7
    max_history_messages: int = 20
    persona_prompt: str = (
        "You are a food recommender for locals and tourists in Hanoi, Vietnam. "
        "Please answer user questions about food in an energetic, friendly and useful way."
    )
    response_guidelines: str = (
        "Response format:\n"
        "- Short and concise answers.\n"
        "- Use suitable emojis.\n"
        "- Give specific and as much as possible recommendations from the data.\n"
        "- Include the restaurant name, address, star ratings and menus.\n"
        "- If the user asks about food or restaurant not in the data, recommend similar ones from the data.\n"
        "- Be friendly and response in the user language.\n"
        "- Remember and reference previous conversations for the best answers"
    )
    api_prefix: str = ""
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    uploads_dir: Optional[str] = "uploads"


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def load_config(dotenv_path: Optional[str] = None, **overrides: Any) -> RelayConfig:
    """Build a :class:`RelayConfig` from ``.env``/environment plus explicit overrides.

    Environment variables: ``OPENAI_API_KEY``, ``UPSTREAM_ENDPOINT``,
    ``UPSTREAM_MODEL`` and ``UPSTREAM_TIMEOUT``. Overrides whose value is
    ``None`` are ignored so CLI defaults do not mask the environment.
    """
    load_dotenv(dotenv_path)

    upstream = UpstreamConfig(api_key=os.environ.get("OPENAI_API_KEY") or None)
    if os.environ.get("UPSTREAM_ENDPOINT"):
        upstream.endpoint = os.environ["UPSTREAM_ENDPOINT"]
    upstream.request_timeout = _env_float("UPSTREAM_TIMEOUT")

    config = RelayConfig(upstream=upstream)
    if os.environ.get("UPSTREAM_MODEL"):
        config.default_model = os.environ["UPSTREAM_MODEL"]

    for key, value in overrides.items():
        if value is None:
            continue
        if hasattr(upstream, key):
            setattr(upstream, key, value)
        elif hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ValueError(f"Unknown configuration option '{key}'")
    return config
