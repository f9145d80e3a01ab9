"""
Streaming session management.

- ``SessionRegistry``: live sessions keyed by stream id
- ``StreamingSessionDriver``: reads one stream and reports lifecycle events
- ``CancellationCoordinator``: local abort plus remote stop
"""

from .coordinator import CancellationCoordinator
from .driver import StreamingSessionDriver
from .registry import CancellationHandle, Session, SessionRegistry

__all__ = [
    "CancellationCoordinator",
    "CancellationHandle",
    "Session",
    "SessionRegistry",
    "StreamingSessionDriver",
]
