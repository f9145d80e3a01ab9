"""
Viewer-side chat state.

A viewer keeps the visible chat turns plus, per live stream id, the raw text
received so far. Assistant turns are never appended to directly: each chunk
extends the raw buffer and ``content``/``thought_text`` are recomputed from it.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from chat_relay.logging_utils import ContextualLogger
from chat_relay.relay.messages import (
    Ack,
    CancelStreamRequest,
    LifecycleEvent,
    ProcessPageSummaryRequest,
    ProcessSelectedTextRequest,
    StartStreamRequest,
    StreamChunkEvent,
    StreamDoneEvent,
    StreamErrorEvent,
    ViewerAction,
    parse_viewer_action,
    to_wire,
)
from chat_relay.relay.relay import CrossContextRelay, Subscription

from .prompts import (
    DEFAULT_TRANSLATE_LANGUAGE,
    TextActionType,
    page_summary_turn,
    selected_text_turn,
)
from .splitter import THINK_END, THINK_START, split_thought_and_answer

SendRequest = Callable[[dict], Awaitable[dict]]
MessageListener = Callable[["Message"], None]

START_FAILED_MESSAGE = "Failed to start request."

logger = ContextualLogger({"component": "viewer"})


class Message(BaseModel):
    """One chat turn as displayed by a viewer."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["user", "assistant"]
    content: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    thought_text: str = ""
    is_thinking_open: bool = False
    show_thoughts: bool = False
    error: str | None = None


class ChatViewer:
    """A chat UI context driven by lifecycle events from the relay."""

    def __init__(
        self,
        send_request: SendRequest,
        *,
        name: str | None = None,
        open_marker: str = THINK_START,
        close_marker: str = THINK_END,
        on_update: MessageListener | None = None,
        translate_language: str = DEFAULT_TRANSLATE_LANGUAGE,
    ) -> None:
        self.send_request = send_request
        self.name = name or f"viewer-{uuid.uuid4().hex[:8]}"
        self.open_marker = open_marker
        self.close_marker = close_marker
        self.on_update = on_update
        self.translate_language = translate_language
        self.messages: list[Message] = []
        self.is_loading = False
        self._stream_messages: dict[str, str] = {}
        self._stream_buffers: dict[str, str] = {}
        self._subscription: Subscription | None = None
        self.log = logger.bind(viewer=self.name)

    # ------------------------------------------------------------------ #
    # Relay attachment
    # ------------------------------------------------------------------ #

    def attach(self, relay: CrossContextRelay) -> Subscription:
        self.detach()
        self._subscription = relay.subscribe(self.handle_event, name=self.name)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # ------------------------------------------------------------------ #
    # Outgoing requests
    # ------------------------------------------------------------------ #

    async def send_message(self, content: str, endpoint: str, api_key: str) -> str | None:
        """
        Append the user turn and an empty assistant turn, then start a stream.

        Returns the stream id, or None when there was nothing to send or the
        background refused the request.
        """
        if not content.strip():
            return None
        return await self._start_turn(content, content, endpoint, api_key)

    async def summarize_page(
        self, title: str, url: str, content: str, endpoint: str, api_key: str
    ) -> str | None:
        turn = page_summary_turn(title, url, content)
        return await self._start_turn(turn.prompt, turn.user_content, endpoint, api_key)

    async def process_selected_text(
        self, kind: TextActionType, text: str, endpoint: str, api_key: str
    ) -> str | None:
        """Run a summary, chat or translate action on a text selection."""
        turn = selected_text_turn(kind, text, self.translate_language)
        return await self._start_turn(turn.prompt, turn.user_content, endpoint, api_key)

    async def process_action(
        self, payload: dict | ViewerAction, endpoint: str, api_key: str
    ) -> str | None:
        """
        Handle a ``processPageSummary`` or ``processSelectedText`` message.

        Malformed payloads are logged and ignored, returning None.
        """
        if isinstance(payload, dict):
            try:
                payload = parse_viewer_action(payload)
            except ValidationError as e:
                self.log.warning(
                    "Ignored malformed viewer action",
                    action=payload.get("action"),
                    errors=e.error_count(),
                )
                return None

        match payload:
            case ProcessPageSummaryRequest(data=page):
                return await self.summarize_page(
                    page.title, page.url, page.content, endpoint, api_key
                )
            case ProcessSelectedTextRequest(data=selection):
                return await self.process_selected_text(
                    selection.type, selection.text, endpoint, api_key
                )
        return None

    async def _start_turn(
        self, prompt: str, user_content: str, endpoint: str, api_key: str
    ) -> str | None:
        self._append(Message(role="user", content=user_content))
        assistant = self._append(Message(role="assistant", show_thoughts=True))
        self.is_loading = True

        stream_id = uuid.uuid4().hex
        self._stream_messages[stream_id] = assistant.id
        self._stream_buffers[stream_id] = ""

        request = StartStreamRequest(
            endpoint=endpoint, api_key=api_key, message=prompt, stream_id=stream_id
        )
        try:
            ack = Ack.model_validate(await self.send_request(to_wire(request)))
        except Exception as e:
            self.log.error("Failed to start streaming", error_message=str(e))
            ack = Ack(success=False, message=str(e))

        if not ack.success:
            self._forget(stream_id)
            self.is_loading = False
            self._update(assistant.id, content=START_FAILED_MESSAGE, show_thoughts=False, error=ack.message)
            return None
        return stream_id

    async def cancel(self) -> list[str]:
        """
        Cancel every stream this viewer is waiting on.

        Each stream is forgotten before its cancel request goes out, so a
        request that fails is logged and the rest are still sent.
        """
        stream_ids = list(self._stream_messages)
        try:
            for stream_id in stream_ids:
                self._forget(stream_id)
                try:
                    await self.send_request(to_wire(CancelStreamRequest(stream_id=stream_id)))
                except Exception as e:
                    self.log.error(
                        "Failed to cancel stream",
                        stream_id=stream_id,
                        error_message=str(e),
                    )
        finally:
            self.is_loading = False
        return stream_ids

    # ------------------------------------------------------------------ #
    # Incoming lifecycle events
    # ------------------------------------------------------------------ #

    def handle_event(self, event: LifecycleEvent) -> None:
        match event:
            case StreamChunkEvent():
                self._on_chunk(event.stream_id, event.text)
            case StreamDoneEvent():
                self._on_done(event.stream_id)
            case StreamErrorEvent():
                self._on_error(event.stream_id, event.message)

    def _on_chunk(self, stream_id: str, text: str) -> None:
        message_id = self._stream_messages.get(stream_id)
        if message_id is None:
            return

        buffer = self._stream_buffers.get(stream_id, "") + text
        self._stream_buffers[stream_id] = buffer

        split = split_thought_and_answer(buffer, self.open_marker, self.close_marker)
        wants_thoughts = bool(split.thoughts) or split.is_thinking_open or split.has_open_marker
        self._update(
            message_id,
            content=split.answer,
            thought_text=split.thoughts,
            is_thinking_open=split.is_thinking_open,
            show_thoughts=wants_thoughts and not split.thinking_ended,
        )

    def _on_done(self, stream_id: str) -> None:
        message_id = self._stream_messages.get(stream_id)
        if message_id is not None:
            self._update(message_id, show_thoughts=False, is_thinking_open=False)
            self._forget(stream_id)
        self.is_loading = bool(self._stream_messages)

    def _on_error(self, stream_id: str, error: str) -> None:
        message_id = self._stream_messages.get(stream_id)
        if message_id is not None:
            self._update(message_id, show_thoughts=False, is_thinking_open=False, error=error)
            self._forget(stream_id)
            self.log.warning("Stream ended with error", stream_id=stream_id, error_message=error)
        self.is_loading = bool(self._stream_messages)

    # ------------------------------------------------------------------ #
    # Local state
    # ------------------------------------------------------------------ #

    def toggle_thoughts(self, message_id: str) -> None:
        message = self.get_message(message_id)
        if message is not None:
            self._update(message_id, show_thoughts=not message.show_thoughts)

    def clear(self) -> None:
        self.messages = []

    def get_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    @property
    def live_stream_ids(self) -> list[str]:
        return list(self._stream_messages)

    def _forget(self, stream_id: str) -> None:
        self._stream_messages.pop(stream_id, None)
        self._stream_buffers.pop(stream_id, None)

    def _append(self, message: Message) -> Message:
        self.messages.append(message)
        self._notify(message)
        return message

    def _update(self, message_id: str, **changes: Any) -> None:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                updated = message.model_copy(update=changes)
                self.messages[index] = updated
                self._notify(updated)
                return

    def _notify(self, message: Message) -> None:
        if self.on_update is not None:
            self.on_update(message)
