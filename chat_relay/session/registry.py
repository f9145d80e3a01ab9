"""
Session registry for in-flight streaming requests.

The registry is an explicit object owned by the background service, so tests
and multiple services in one process each get an isolated table. Rows are
written by the driver that owns the id (create, attach) and removed either by
that driver on natural termination or by the cancellation coordinator;
``remove`` is idempotent so whichever path arrives second is a no-op.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from chat_relay.llm.exceptions import DuplicateSessionError


class CancellationHandle:
    """Local abort switch for one session's read task."""

    def __init__(self) -> None:
        self._task: asyncio.Task | None = None
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def bind(self, task: asyncio.Task) -> None:
        self._task = task
        if self._aborted:
            task.cancel()

    def abort(self) -> None:
        """Stop the read loop. Safe to call repeatedly or after completion."""
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


@dataclass
class Session:
    """One in-flight streaming chat request."""
    id: str
    handle: CancellationHandle
    endpoint: str
    credential: str
    principal: str
    remote_task_id: str | None = None
    created_at: float = field(default_factory=time.monotonic)


class SessionRegistry:
    """Table of live sessions keyed by their opaque id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def create(
        self,
        session_id: str,
        handle: CancellationHandle,
        endpoint: str,
        credential: str,
        principal: str,
    ) -> Session:
        """
        Register a new session.

        Raises:
            DuplicateSessionError: If ``session_id`` is already live. Ids are
                generated fresh per request, so this is a caller bug.
        """
        if session_id in self._sessions:
            raise DuplicateSessionError(f"Session '{session_id}' is already registered")
        session = Session(
            id=session_id,
            handle=handle,
            endpoint=endpoint,
            credential=credential,
            principal=principal,
        )
        self._sessions[session_id] = session
        return session

    def attach_remote_task_id(self, session_id: str, task_id: str | None) -> bool:
        """
        Record the provider's task id, first write wins.

        Returns True only when the id was stored by this call.
        """
        session = self._sessions.get(session_id)
        if session is None or not task_id or session.remote_task_id is not None:
            return False
        session.remote_task_id = task_id
        return True

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)

    def ids(self) -> list[str]:
        return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
