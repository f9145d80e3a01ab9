"""
Streaming functionality for chat-message responses.

This module contains:
- Incremental SSE frame decoding
- Decoded event and side-signal models
"""

from .models import DecodedEvent, DecodedEventType, FrameSignals
from .parser import SSEFrameDecoder

__all__ = [
    "DecodedEvent",
    "DecodedEventType",
    "FrameSignals",
    "SSEFrameDecoder",
]
