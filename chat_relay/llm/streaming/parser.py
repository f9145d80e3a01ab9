"""
Incremental SSE frame decoder for chat-message streams.

Bytes arrive in arbitrary slices: a multi-byte UTF-8 character or a ``data:``
line may be split across two reads. The decoder carries both the undecoded
bytes and the unterminated line between ``feed`` calls and only parses a line
once its terminator has been seen.
"""

from __future__ import annotations

import codecs
import json
from dataclasses import asdict
from typing import Any

from ..exceptions import StreamingError
from .models import (
    DecodedEvent,
    DecoderStats,
    FrameSignals,
    NO_SIGNALS,
)

DATA_MARKER = "data:"
DONE_SENTINEL = "[DONE]"

# Text lives under different keys depending on the app type (chat, agent,
# completion, workflow); first non-empty wins.
TEXT_FIELDS: tuple[tuple[str, ...], ...] = (
    ("answer",),
    ("text",),
    ("data", "answer"),
    ("data", "text"),
)
TERMINAL_EVENTS = frozenset({"message_end", "completed"})
ERROR_EVENT = "error"


def extract_text(payload: Any) -> str:
    """Return the first non-empty text field of a decoded payload."""
    if not isinstance(payload, dict):
        return ""
    for path in TEXT_FIELDS:
        value: Any = payload
        for key in path:
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def extract_signals(payload: Any) -> FrameSignals:
    """Pull task id and event markers out of a payload."""
    if not isinstance(payload, dict):
        return NO_SIGNALS

    task_id = payload.get("task_id")
    event_name = payload.get("event")
    if not isinstance(task_id, str) or not task_id:
        task_id = None
    if not isinstance(event_name, str) or not event_name:
        event_name = None

    error_message = None
    if event_name == ERROR_EVENT:
        error_message = str(payload.get("message") or "Provider reported an error")

    if task_id is None and event_name is None:
        return NO_SIGNALS
    return FrameSignals(
        task_id=task_id,
        event_name=event_name,
        is_terminal=event_name in TERMINAL_EVENTS,
        error_message=error_message,
    )


class SSEFrameDecoder:
    """Single-use decoder bound to one response body."""

    def __init__(self, report_parse_failures: bool = False):
        self.report_parse_failures = report_parse_failures
        self._bytes = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry_line = ""
        self._saw_done = False
        self._closed = False
        self.stats = DecoderStats()

    @property
    def saw_done(self) -> bool:
        return self._saw_done

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, data: bytes) -> list[DecodedEvent]:
        """Decode one slice of the body and return the events it completes."""
        if self._closed:
            raise StreamingError("SSE decoder already flushed")

        self.stats.bytes_fed += len(data)
        text = self._carry_line + self._bytes.decode(data)
        lines = text.split("\n")
        # The tail has no terminator yet; hold it until a later feed completes it
        self._carry_line = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[DecodedEvent]:
        """
        Finish the stream after the transport reported end-of-input.

        The carried line is parsed as if newline-terminated, then an implicit
        ``DONE`` is emitted unless the sentinel already arrived.
        """
        if self._closed:
            raise StreamingError("SSE decoder already flushed")

        tail = self._carry_line + self._bytes.decode(b"", final=True)
        self._carry_line = ""
        self._closed = True

        events = self._parse_lines([tail]) if tail else []
        if not self._saw_done:
            self._saw_done = True
            events.append(DecodedEvent.done())
        return events

    def _parse_lines(self, lines: list[str]) -> list[DecodedEvent]:
        events = []
        for raw_line in lines:
            self.stats.total_lines += 1
            event = self._parse_line(raw_line)
            if event is not None:
                events.append(event)
        return events

    def _parse_line(self, raw_line: str) -> DecodedEvent | None:
        line = raw_line.strip()
        if not line.startswith(DATA_MARKER):
            return None

        self.stats.data_lines += 1
        data_content = line[len(DATA_MARKER):].strip()

        if data_content == DONE_SENTINEL:
            self._saw_done = True
            return DecodedEvent.done(raw_data=data_content)

        try:
            payload = json.loads(data_content)
        except json.JSONDecodeError as e:
            self.stats.parse_failures += 1
            if self.report_parse_failures:
                return DecodedEvent.parse_failure(data_content, f"JSON decode error: {e}")
            return None

        self.stats.chunks += 1
        return DecodedEvent.chunk(
            extract_text(payload),
            signals=extract_signals(payload),
            raw_data=data_content,
        )

    def get_stats(self) -> dict[str, int]:
        """Get decoding statistics for monitoring."""
        return asdict(self.stats)
