"""
Tests for the cancellation coordinator: local abort plus best-effort remote stop.
"""

import json

import pytest

from chat_relay.logging_utils import CANCELLED_MESSAGE
from chat_relay.session.coordinator import CancellationCoordinator
from chat_relay.session.driver import StreamingSessionDriver


@pytest.fixture
def driver(client, registry, relay):
    return StreamingSessionDriver(client, registry, relay)


@pytest.fixture
def coordinator(client, registry):
    return CancellationCoordinator(registry, client)


async def settle(driver, coordinator, relay):
    await driver.join()
    await coordinator.aclose()
    await relay.flush()


class TestCancelMidStream:
    """Cancel while bytes are still arriving."""

    @pytest.mark.asyncio
    async def test_cancel_with_task_id_sends_remote_stop(
        self, driver, coordinator, provider, relay, recorder, registry, waiter
    ):
        provider.stream(
            [provider.frames({"event": "message", "answer": "Hi", "task_id": "t-1"})],
            hang=True,
        )
        driver.start("https://api.x.com", "secret", "hello", "s-1")
        await waiter(lambda: registry.get("s-1") and registry.get("s-1").remote_task_id)

        assert coordinator.cancel("s-1") is True
        assert "s-1" not in registry

        await settle(driver, coordinator, relay)

        stops = provider.stop_requests()
        assert len(stops) == 1
        assert stops[0].url.path == "/v1/chat-messages/t-1/stop"
        assert stops[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(stops[0].content) == {"user": "ai-sidebar-chatbot"}

        assert recorder.actions.count("streamError") == 1
        assert recorder.actions[-1] == "streamError"
        assert recorder.events[-1].message == CANCELLED_MESSAGE
        assert "streamDone" not in recorder.actions

    @pytest.mark.asyncio
    async def test_cancel_without_task_id_is_local_only(
        self, driver, coordinator, provider, relay, recorder, registry, waiter
    ):
        provider.stream([provider.frames({"answer": "Hi"})], hang=True)
        driver.start("https://api.x.com", "secret", "hello", "s-1")
        await waiter(lambda: recorder.actions)

        assert coordinator.cancel("s-1") is True
        await settle(driver, coordinator, relay)

        assert provider.stop_requests() == []
        assert recorder.actions == ["streamChunk", "streamError"]
        assert "s-1" not in registry

    @pytest.mark.asyncio
    async def test_cancel_before_reading_started(
        self, driver, coordinator, provider, relay, recorder, registry
    ):
        provider.stream([provider.frames({"answer": "never"})])
        driver.start("https://api.x.com", "secret", "hello", "s-1")

        assert coordinator.cancel("s-1") is True
        await settle(driver, coordinator, relay)

        assert recorder.actions == ["streamError"]
        assert recorder.events[0].message == CANCELLED_MESSAGE
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_remote_stop_failure_is_only_logged(
        self, driver, coordinator, provider, relay, recorder, registry, waiter
    ):
        provider.stop_status = 500
        provider.stream([provider.frames({"answer": "x", "task_id": "t-9"})], hang=True)
        driver.start("https://api.x.com", "secret", "hello", "s-1")
        await waiter(lambda: registry.get("s-1") and registry.get("s-1").remote_task_id)

        coordinator.cancel("s-1")
        await settle(driver, coordinator, relay)

        assert len(provider.stop_requests()) == 1
        assert coordinator.pending_remote_stops == 0
        assert recorder.actions[-1] == "streamError"
        assert recorder.events[-1].message == CANCELLED_MESSAGE


class TestIdempotence:
    """Cancel may race completion or be repeated."""

    @pytest.mark.asyncio
    async def test_cancel_twice(
        self, driver, coordinator, provider, relay, recorder, registry, waiter
    ):
        provider.stream([provider.frames({"answer": "x", "task_id": "t-1"})], hang=True)
        driver.start("https://api.x.com", "secret", "hello", "s-1")
        await waiter(lambda: registry.get("s-1") and registry.get("s-1").remote_task_id)

        assert coordinator.cancel("s-1") is True
        assert coordinator.cancel("s-1") is False
        await settle(driver, coordinator, relay)

        assert len(provider.stop_requests()) == 1
        assert recorder.actions.count("streamError") == 1

    @pytest.mark.asyncio
    async def test_cancel_after_completion_is_noop(
        self, driver, coordinator, provider, relay, recorder, registry
    ):
        provider.stream([provider.frames({"answer": "x", "task_id": "t-1"}, "[DONE]")])
        driver.start("https://api.x.com", "secret", "hello", "s-1")
        await driver.join()

        assert coordinator.cancel("s-1") is False
        await settle(driver, coordinator, relay)

        assert provider.stop_requests() == []
        assert recorder.actions == ["streamChunk", "streamDone"]

    def test_cancel_unknown_id(self, coordinator):
        assert coordinator.cancel("never-existed") is False

    @pytest.mark.asyncio
    async def test_cancel_all(
        self, driver, coordinator, provider, relay, recorder, registry
    ):
        provider.stream([], hang=True)
        driver.start("https://api.x.com", "secret", "one", "s-1")
        driver.start("https://api.x.com", "secret", "two", "s-2")

        assert coordinator.cancel_all() == 2
        await settle(driver, coordinator, relay)

        assert len(registry) == 0
        assert sorted(e.stream_id for e in recorder.events) == ["s-1", "s-2"]
        assert set(recorder.actions) == {"streamError"}
