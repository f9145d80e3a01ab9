"""
Streaming session driver.

Opens the streaming chat request, feeds the body to an SSEFrameDecoder and
turns decoded frames into lifecycle events on the relay. Every session ends
with exactly one terminal event (``streamDone`` or ``streamError``) and its
registry row removed, whichever way the read loop ends: natural completion,
provider error, transport failure or cancellation.
"""

from __future__ import annotations

import asyncio
import functools

from chat_relay.llm.client import DifyChatClient, raise_for_status
from chat_relay.llm.endpoint import normalize_endpoint
from chat_relay.llm.exceptions import StreamCancelledError, StreamingError
from chat_relay.llm.models import DEFAULT_PRINCIPAL
from chat_relay.llm.streaming.models import DecodedEvent, DecodedEventType
from chat_relay.llm.streaming.parser import SSEFrameDecoder
from chat_relay.logging_utils import ContextualLogger, RelayErrorHandler
from chat_relay.relay.messages import (
    StreamChunkEvent,
    StreamDoneEvent,
    StreamErrorEvent,
)
from chat_relay.relay.relay import CrossContextRelay

from .registry import CancellationHandle, SessionRegistry

TASK_ID_HEADER = "X-Task-Id"

logger = ContextualLogger({"component": "driver"})


class _StreamRun:
    """Per-session emitter that lets exactly one terminal event through."""

    def __init__(
        self,
        session_id: str,
        registry: SessionRegistry,
        relay: CrossContextRelay,
    ) -> None:
        self.session_id = session_id
        self.registry = registry
        self.relay = relay
        self.log = logger.bind(stream_id=session_id)
        self.terminated = False
        self.chunks_sent = 0

    def chunk(self, text: str) -> None:
        if self.terminated:
            return
        self.chunks_sent += 1
        self.relay.publish(StreamChunkEvent(stream_id=self.session_id, text=text))

    def complete(self) -> bool:
        if self._terminate():
            self.log.info("Stream completed", chunks=self.chunks_sent)
            self.relay.publish(StreamDoneEvent(stream_id=self.session_id))
            return True
        return False

    def fail(self, error: BaseException) -> bool:
        if self._terminate():
            category, message = RelayErrorHandler.classify_error(error)
            self.log.warning(
                "Stream failed",
                error_type=type(error).__name__,
                error_category=category.value,
                error_message=message,
                chunks=self.chunks_sent,
            )
            self.relay.publish(StreamErrorEvent(stream_id=self.session_id, message=message))
            return True
        return False

    def _terminate(self) -> bool:
        if self.terminated:
            return False
        self.terminated = True
        self.registry.remove(self.session_id)
        return True


class StreamingSessionDriver:
    """Runs streaming chat sessions and reports them on the relay."""

    def __init__(
        self,
        client: DifyChatClient,
        registry: SessionRegistry,
        relay: CrossContextRelay,
        principal: str = DEFAULT_PRINCIPAL,
        *,
        task_id_header: str = TASK_ID_HEADER,
        report_parse_failures: bool = True,
    ) -> None:
        self.client = client
        self.registry = registry
        self.relay = relay
        self.principal = principal
        self.task_id_header = task_id_header
        self.report_parse_failures = report_parse_failures
        self._tasks: dict[str, asyncio.Task] = {}

    def start(
        self,
        endpoint: str,
        credential: str,
        message: str,
        session_id: str,
    ) -> asyncio.Task:
        """
        Register the session and spawn its read task.

        The handle is bound to the task before this returns, so a cancel that
        arrives at any later point finds a complete row.

        Raises:
            DuplicateSessionError: If ``session_id`` is already live.
        """
        base = normalize_endpoint(endpoint)
        handle = CancellationHandle()
        self.registry.create(session_id, handle, base, credential, self.principal)

        run = _StreamRun(session_id, self.registry, self.relay)
        task = asyncio.get_running_loop().create_task(
            self._run(run, base, credential, message),
            name=f"stream-{session_id}",
        )
        handle.bind(task)
        self._tasks[session_id] = task
        task.add_done_callback(functools.partial(self._on_task_done, run))
        run.log.info("Stream started", endpoint=base)
        return task

    async def _run(
        self,
        run: _StreamRun,
        endpoint: str,
        credential: str,
        message: str,
    ) -> None:
        try:
            async with self.client.stream_chat(
                endpoint, credential, message, self.principal
            ) as response:
                task_id = response.headers.get(self.task_id_header)
                if self.registry.attach_remote_task_id(run.session_id, task_id):
                    run.log.debug("Remote task id from header", task_id=task_id)

                await raise_for_status(response, endpoint)

                decoder = SSEFrameDecoder(report_parse_failures=self.report_parse_failures)
                async for data in response.aiter_bytes():
                    if self._consume(run, decoder.feed(data)):
                        return
                    # Let a pending cancel request run between chunks
                    await asyncio.sleep(0)
                self._consume(run, decoder.flush())
                run.log.debug("Decoder stats", **decoder.get_stats())
        except asyncio.CancelledError:
            run.fail(StreamCancelledError(endpoint=endpoint))
            raise
        except Exception as e:
            run.log.error(
                "Stream read failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            run.fail(e)

    def _consume(self, run: _StreamRun, events: list[DecodedEvent]) -> bool:
        """Apply decoded events; True once the session reached a terminal state."""
        for event in events:
            if event.event_type is DecodedEventType.PARSE_FAILURE:
                run.log.debug("Malformed frame skipped", raw=event.raw_data, error=event.error)
                continue
            if event.is_done:
                return run.complete()

            signals = event.signals
            if signals.task_id and self.registry.attach_remote_task_id(
                run.session_id, signals.task_id
            ):
                run.log.debug("Remote task id from payload", task_id=signals.task_id)
            if event.text:
                run.chunk(event.text)
            if signals.is_error:
                return run.fail(StreamingError(signals.error_message or "Provider reported an error"))
            if signals.is_terminal:
                return run.complete()
        return False

    def _on_task_done(self, run: _StreamRun, task: asyncio.Task) -> None:
        if self._tasks.get(run.session_id) is task:
            del self._tasks[run.session_id]
        if run.terminated:
            return
        # Only reached when the task was cancelled before its first step
        if task.cancelled():
            run.fail(StreamCancelledError())
        else:
            run.fail(task.exception() or StreamingError("Stream ended unexpectedly"))

    async def join(self) -> None:
        """Wait for every running session to reach a terminal state."""
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
