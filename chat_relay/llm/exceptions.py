"""
Error handling for chat provider operations.

This module provides the error taxonomy used across the relay:
- Transport failures (connection, DNS, TLS, timeouts)
- Non-2xx provider responses with a user-facing category
- Quota exhaustion detected from the provider's error body
- Deliberate cancellation, kept distinct from network failures
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(Enum):
    """User-facing categories for provider failures."""
    AUTH = "auth"
    PERMISSION = "permission"
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    MALFORMED_REQUEST = "malformed_request"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    SERVER_ERROR = "server_error"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class LLMError(Exception):
    """Base provider error with request context."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code
        self.response_data = response_data or {}


class TransportError(LLMError):
    """Connection, DNS, TLS or timeout failure before a response arrived."""
    pass


class APIStatusError(LLMError):
    """Provider answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.category = category


class QuotaExceededError(APIStatusError):
    """Model quota exhausted or request parameters over the plan limit."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.QUOTA)
        super().__init__(message, **kwargs)


class StreamingError(LLMError):
    """Streaming-specific errors."""
    pass


class StreamCancelledError(LLMError):
    """The stream was stopped on purpose."""

    def __init__(self, message: str = "Request cancelled", **kwargs):
        super().__init__(message, **kwargs)


class DuplicateSessionError(RuntimeError):
    """A session id was registered twice while still live."""
    pass
