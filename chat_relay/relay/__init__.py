"""
Cross-context messaging between the background service and viewers.

The background service itself lives in ``chat_relay.relay.background``.
"""

from .messages import (
    Ack,
    CancelStreamRequest,
    ChatRequest,
    StartStreamRequest,
    StreamChunkEvent,
    StreamDoneEvent,
    StreamErrorEvent,
    ValidateApiKeyRequest,
    parse_lifecycle_event,
    parse_request,
)
from .relay import CrossContextRelay, Subscription

__all__ = [
    "Ack",
    "CancelStreamRequest",
    "ChatRequest",
    "CrossContextRelay",
    "StartStreamRequest",
    "StreamChunkEvent",
    "StreamDoneEvent",
    "StreamErrorEvent",
    "Subscription",
    "ValidateApiKeyRequest",
    "parse_lifecycle_event",
    "parse_request",
]
