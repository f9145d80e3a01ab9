"""
Chat provider integration.

This package provides:
- Endpoint normalization shared by every call
- Request/response dataclasses
- The provider error taxonomy
- Incremental SSE decoding (``chat_relay.llm.streaming``)
- The HTTP client (``chat_relay.llm.client``)
"""

from __future__ import annotations

from .endpoint import normalize_endpoint
from .exceptions import (
    APIStatusError,
    DuplicateSessionError,
    ErrorCategory,
    LLMError,
    QuotaExceededError,
    StreamCancelledError,
    StreamingError,
    TransportError,
)
from .models import (
    ApiKeyValidation,
    ChatCompletion,
    ChatMessageRequest,
    HttpClientSettings,
    ResponseMode,
)

__all__ = [
    "APIStatusError",
    "ApiKeyValidation",
    "ChatCompletion",
    "ChatMessageRequest",
    "DuplicateSessionError",
    "ErrorCategory",
    "HttpClientSettings",
    "LLMError",
    "QuotaExceededError",
    "ResponseMode",
    "StreamCancelledError",
    "StreamingError",
    "TransportError",
    "normalize_endpoint",
]
