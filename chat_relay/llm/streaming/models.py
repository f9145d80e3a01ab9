"""
Streaming-specific dataclasses for the SSE frame decoder.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DecodedEventType(Enum):
    """Kinds of events produced by one decode pass."""
    CHUNK = "chunk"
    DONE = "done"
    PARSE_FAILURE = "parse_failure"


@dataclass(frozen=True)
class FrameSignals:
    """Metadata found in a payload, surfaced next to the event it came with."""
    task_id: str | None = None
    event_name: str | None = None
    is_terminal: bool = False
    error_message: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error_message is not None


NO_SIGNALS = FrameSignals()


@dataclass(frozen=True)
class DecodedEvent:
    """A single decoded SSE frame."""
    event_type: DecodedEventType
    text: str = ""
    signals: FrameSignals = field(default=NO_SIGNALS)
    raw_data: str = ""
    error: str | None = None

    @classmethod
    def chunk(
        cls, text: str, signals: FrameSignals = NO_SIGNALS, raw_data: str = ""
    ) -> DecodedEvent:
        return cls(DecodedEventType.CHUNK, text=text, signals=signals, raw_data=raw_data)

    @classmethod
    def done(cls, raw_data: str = "") -> DecodedEvent:
        return cls(DecodedEventType.DONE, raw_data=raw_data)

    @classmethod
    def parse_failure(cls, raw_data: str, error: str) -> DecodedEvent:
        return cls(DecodedEventType.PARSE_FAILURE, raw_data=raw_data, error=error)

    @property
    def is_done(self) -> bool:
        return self.event_type is DecodedEventType.DONE


@dataclass
class DecoderStats:
    """Counters for one decoder instance."""
    total_lines: int = 0
    data_lines: int = 0
    chunks: int = 0
    parse_failures: int = 0
    bytes_fed: int = 0
