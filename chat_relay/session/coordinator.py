"""
Cancellation coordinator.

A cancel has two independent effects: the local abort, which stops the read
loop and so guarantees no further delivery, and a best-effort remote stop so
the provider stops generating. The remote call is never awaited by ``cancel``
and its outcome is only logged.
"""

from __future__ import annotations

import asyncio

from chat_relay.llm.client import DifyChatClient
from chat_relay.logging_utils import ContextualLogger, operation_context

from .registry import Session, SessionRegistry

logger = ContextualLogger({"component": "coordinator"})


class CancellationCoordinator:
    """Idempotent multi-path cancellation of streaming sessions."""

    def __init__(self, registry: SessionRegistry, client: DifyChatClient) -> None:
        self.registry = registry
        self.client = client
        self._pending_stops: set[asyncio.Task] = set()

    def cancel(self, session_id: str) -> bool:
        """
        Cancel a session.

        Unknown or already-finished ids are a no-op: callers may race the
        session's natural completion. Returns True when a live session was
        found.
        """
        session = self.registry.get(session_id)
        if session is None:
            logger.debug("Cancel for unknown session ignored", stream_id=session_id)
            return False

        try:
            session.handle.abort()
            if session.remote_task_id:
                self._schedule_remote_stop(session)
            else:
                logger.debug("No remote task id yet, local abort only", stream_id=session_id)
        finally:
            self.registry.remove(session_id)

        logger.info("Session cancelled", stream_id=session_id)
        return True

    def cancel_all(self) -> int:
        """Cancel every live session; returns how many were found."""
        return sum(self.cancel(session_id) for session_id in self.registry.ids())

    def _schedule_remote_stop(self, session: Session) -> None:
        task = asyncio.get_running_loop().create_task(
            self._remote_stop(session), name=f"remote-stop-{session.id}"
        )
        self._pending_stops.add(task)
        task.add_done_callback(self._pending_stops.discard)

    async def _remote_stop(self, session: Session) -> None:
        try:
            async with operation_context(
                "remote stop",
                context={"stream_id": session.id, "task_id": session.remote_task_id},
            ):
                await self.client.stop_task(
                    session.endpoint,
                    session.credential,
                    session.remote_task_id,
                    session.principal,
                )
        except Exception as e:
            # Local abort already happened; the provider may keep generating
            logger.warning(
                "Remote stop failed",
                stream_id=session.id,
                task_id=session.remote_task_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )

    @property
    def pending_remote_stops(self) -> int:
        return len(self._pending_stops)

    async def aclose(self) -> None:
        """Wait for outstanding remote stop calls."""
        if self._pending_stops:
            await asyncio.gather(*list(self._pending_stops), return_exceptions=True)
