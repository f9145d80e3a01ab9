"""
Shared fixtures: an in-process fake chat provider served through
httpx.MockTransport, plus relay/registry instances and an event recorder.
"""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from chat_relay.llm.client import DifyChatClient
from chat_relay.relay.relay import CrossContextRelay
from chat_relay.session.registry import SessionRegistry


def encode_frames(*frames) -> bytes:
    """Encode dict payloads and raw strings as ``data:`` lines."""
    lines = []
    for frame in frames:
        data = frame if isinstance(frame, str) else json.dumps(frame, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


class FakeProvider:
    """Records every request and answers by path."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.stop_status = 200
        self.applications_status = 200
        self.blocking_status = 200
        self.blocking_body: dict | str = {"answer": "blocking answer", "task_id": "t-b"}
        self._chat_stream: tuple[int, dict, list[bytes], bool, Exception | None] | None = None
        self._error: Exception | None = None
        self.release = asyncio.Event()
        self.transport = httpx.MockTransport(self._handle)

    frames = staticmethod(encode_frames)

    def stream(
        self,
        chunks: list[bytes],
        *,
        status: int = 200,
        headers: dict | None = None,
        hang: bool = False,
        fail_after: Exception | None = None,
    ) -> None:
        """
        Serve ``chunks`` for streaming requests.

        ``hang`` blocks after them; ``fail_after`` is raised from the body
        once they have all been read.
        """
        self._chat_stream = (status, headers or {}, chunks, hang, fail_after)

    def fail_with(self, error: Exception) -> None:
        self._error = error

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._error is not None:
            raise self._error

        path = request.url.path
        if path.endswith("/stop"):
            return httpx.Response(self.stop_status, json={"result": "success"})
        if path.endswith("/applications"):
            return httpx.Response(self.applications_status, json={"message": "apps"})
        if path.endswith("/chat-messages"):
            body = json.loads(request.content)
            if body["response_mode"] == "blocking":
                if isinstance(self.blocking_body, str):
                    return httpx.Response(self.blocking_status, text=self.blocking_body)
                return httpx.Response(self.blocking_status, json=self.blocking_body)
            return self._stream_response()
        return httpx.Response(404, json={"message": "not found"})

    def _stream_response(self) -> httpx.Response:
        status, headers, chunks, hang, fail_after = self._chat_stream or (200, {}, [], False, None)
        release = self.release

        async def body():
            for chunk in chunks:
                yield chunk
            if fail_after is not None:
                raise fail_after
            if hang:
                await release.wait()

        return httpx.Response(
            status,
            headers={"content-type": "text/event-stream", **headers},
            content=body(),
        )

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def stop_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/stop")]


class EventRecorder:
    """Viewer stand-in that keeps every lifecycle event it receives."""

    def __init__(self) -> None:
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def actions(self) -> list[str]:
        return [e.action for e in self.events]

    def texts(self) -> list[str]:
        return [e.text for e in self.events if e.action == "streamChunk"]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest_asyncio.fixture
async def client(provider):
    chat_client = DifyChatClient(transport=provider.transport)
    yield chat_client
    await chat_client.close()


@pytest_asyncio.fixture
async def relay():
    event_relay = CrossContextRelay()
    yield event_relay
    await event_relay.aclose()


@pytest_asyncio.fixture
async def recorder(relay):
    event_recorder = EventRecorder()
    relay.subscribe(event_recorder, name="recorder")
    return event_recorder


@pytest.fixture
def waiter():
    return wait_until
