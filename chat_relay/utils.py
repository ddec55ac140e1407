"""Shared helpers for the relay."""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> None:
    """Configure root logging to the console and, optionally, ``<log_dir>/chat_relay.log``.

    Calling this more than once replaces the handlers installed previously.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_chat_relay", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, "chat_relay.log"), encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._chat_relay = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def preview(text: Optional[str], limit: int = 50) -> str:
    """Shorten text for log lines and listings."""
    if not text:
        return ""
    return text[:limit] + "..."
