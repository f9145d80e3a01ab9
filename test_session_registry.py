"""
Tests for the session registry and cancellation handles.
"""

import asyncio

import pytest

from chat_relay.llm.exceptions import DuplicateSessionError
from chat_relay.session.registry import CancellationHandle, SessionRegistry


def make_session(registry: SessionRegistry, session_id: str = "s-1"):
    return registry.create(
        session_id,
        CancellationHandle(),
        endpoint="https://api.x.com/v1",
        credential="key",
        principal="tester",
    )


class TestSessionRegistry:
    """Registry operations."""

    def test_create_and_get(self, registry):
        session = make_session(registry)
        assert registry.get("s-1") is session
        assert "s-1" in registry
        assert len(registry) == 1
        assert session.remote_task_id is None

    def test_duplicate_create_raises(self, registry):
        make_session(registry)
        with pytest.raises(DuplicateSessionError):
            make_session(registry)

    def test_id_can_be_reused_after_removal(self, registry):
        make_session(registry)
        registry.remove("s-1")
        make_session(registry)
        assert "s-1" in registry

    def test_attach_remote_task_id_first_write_wins(self, registry):
        make_session(registry)
        assert registry.attach_remote_task_id("s-1", "t-1") is True
        assert registry.attach_remote_task_id("s-1", "t-2") is False
        assert registry.get("s-1").remote_task_id == "t-1"

    def test_attach_to_absent_session_is_noop(self, registry):
        assert registry.attach_remote_task_id("missing", "t-1") is False
        assert registry.get("missing") is None

    def test_attach_empty_task_id_is_ignored(self, registry):
        make_session(registry)
        assert registry.attach_remote_task_id("s-1", None) is False
        assert registry.attach_remote_task_id("s-1", "") is False
        assert registry.attach_remote_task_id("s-1", "t-1") is True

    def test_remove_is_idempotent(self, registry):
        session = make_session(registry)
        assert registry.remove("s-1") is session
        assert registry.remove("s-1") is None
        assert registry.ids() == []

    def test_instances_are_isolated(self):
        first, second = SessionRegistry(), SessionRegistry()
        make_session(first)
        assert "s-1" not in second


class TestCancellationHandle:
    """Local abort switch."""

    @pytest.mark.asyncio
    async def test_abort_cancels_bound_task(self):
        handle = CancellationHandle()
        task = asyncio.create_task(asyncio.sleep(10))
        handle.bind(task)

        handle.abort()
        handle.abort()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert handle.aborted

    @pytest.mark.asyncio
    async def test_abort_before_bind_cancels_on_bind(self):
        handle = CancellationHandle()
        handle.abort()
        task = asyncio.create_task(asyncio.sleep(10))
        handle.bind(task)
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_abort_after_completion_is_noop(self):
        handle = CancellationHandle()
        task = asyncio.create_task(asyncio.sleep(0))
        handle.bind(task)
        await task
        handle.abort()
        assert not task.cancelled()
