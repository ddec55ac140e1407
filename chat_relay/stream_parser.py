"""Incremental decoder for chat-completions event streams."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Dict, List

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"


class StreamContentParser:
    """Feed raw stream bytes, get back the content deltas they complete.

    Chunks may split lines or multi-byte characters anywhere; the remainder is
    buffered until the next :meth:`feed`. Fragments that are not valid JSON are
    skipped without interrupting the stream.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._parts: List[str] = []
        self.done = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._consume(lines)

    def close(self) -> List[str]:
        """Flush whatever is left once the stream has ended."""
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._consume([remainder])

    def _consume(self, lines: List[str]) -> List[str]:
        tokens: List[str] = []
        for raw_line in lines:
            line = raw_line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX) :].strip()
            if data == DONE_MARKER:
                self.done = True
                continue
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON stream line: %s", data)
                continue

            token = self._extract_delta(payload)
            if token:
                self._parts.append(token)
                tokens.append(token)
        return tokens

    @staticmethod
    def _extract_delta(payload: Dict[str, object]) -> str:
        try:
            choices = payload.get("choices") or []
            if not choices:
                return ""
            delta = choices[0].get("delta") or {}
            content = delta.get("content") or ""
            return str(content)
        except (AttributeError, TypeError, IndexError, KeyError):
            logger.debug("Failed to parse stream payload: %s", payload, exc_info=True)
            return ""
