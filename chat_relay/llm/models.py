"""
Core dataclasses for chat-message requests and responses.

This module provides:
- Response modes and the request body sent to the provider
- Blocking chat results
- API key validation outcomes
- HTTP client settings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_PRINCIPAL = "ai-sidebar-chatbot"


class ResponseMode(Enum):
    """Provider response modes."""
    STREAMING = "streaming"
    BLOCKING = "blocking"


@dataclass(frozen=True)
class ChatMessageRequest:
    """Body of ``POST {endpoint}/chat-messages``."""
    query: str
    response_mode: ResponseMode
    user: str = DEFAULT_PRINCIPAL
    inputs: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "inputs": dict(self.inputs),
            "query": self.query,
            "response_mode": self.response_mode.value,
            "user": self.user,
        }


@dataclass(frozen=True)
class ChatCompletion:
    """Result of a blocking chat call."""
    answer: str
    task_id: str | None = None
    message_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> ChatCompletion:
        return cls(
            answer=str(data.get("answer") or data.get("text") or ""),
            task_id=data.get("task_id"),
            message_id=data.get("message_id") or data.get("id"),
            raw=data,
        )


@dataclass(frozen=True)
class ApiKeyValidation:
    """Outcome of probing an endpoint with a key."""
    valid: bool
    message: str
    status_code: int | None = None


@dataclass(frozen=True)
class HttpClientSettings:
    """Connection settings for the shared httpx client."""
    connect_timeout: float = 10.0
    read_timeout: float = 300.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0
    max_connections: int = 20
    max_keepalive: int = 10
    keepalive_expiry: float = 5.0

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> HttpClientSettings:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in config.items() if k in known})
