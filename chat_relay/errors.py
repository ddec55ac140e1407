"""Structured error taxonomy shared by the relay server and its client."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    BAD_REQUEST = "bad_request"
    UPSTREAM_AUTH = "upstream_auth"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    BACKEND_UNREACHABLE = "backend_unreachable"
    MISSING_API_KEY = "missing_api_key"
    INTERNAL = "internal"


def code_for_status(status_code: int) -> ErrorCode:
    """Map an upstream HTTP status to an error code."""
    if status_code in (401, 403):
        return ErrorCode.UPSTREAM_AUTH
    if status_code == 429:
        return ErrorCode.UPSTREAM_RATE_LIMITED
    return ErrorCode.UPSTREAM_ERROR


class RelayError(Exception):
    """Base error carrying a machine-readable code and an HTTP status."""

    code: ErrorCode = ErrorCode.INTERNAL
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code.value, "details": self.details}


class UpstreamError(RelayError):
    """The upstream API answered with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(
            f"Upstream API error: {status_code}",
            code=code_for_status(status_code),
            status_code=status_code,
            details=body,
        )


class UpstreamUnavailableError(RelayError):
    code = ErrorCode.UPSTREAM_UNREACHABLE
    status_code = 502


class MissingAPIKeyError(RelayError):
    code = ErrorCode.MISSING_API_KEY
    status_code = 500


class RelayClientError(RelayError):
    """Failure seen by :class:`chat_relay.client.RelayClient`."""
