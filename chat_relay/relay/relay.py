"""
Best-effort delivery of lifecycle events to viewer contexts.

Each subscriber gets its own FIFO mailbox drained by a dedicated pump task,
so events for one stream reach a viewer in publish order and a slow or failing
viewer never blocks the publisher. Nothing is buffered for viewers that are
not attached: an event published with no subscriber is dropped.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from chat_relay.logging_utils import ContextualLogger

from .messages import LifecycleEvent, RelayMessage, parse_lifecycle_event, to_wire

EventHandler = Callable[[LifecycleEvent], Awaitable[None] | None]

logger = ContextualLogger({"component": "relay"})


class Subscription:
    """One attached viewer."""

    def __init__(self, relay: CrossContextRelay, handler: EventHandler, name: str):
        self.name = name
        self._relay = relay
        self._handler = handler
        self._mailbox: asyncio.Queue[dict] = asyncio.Queue()
        self._closed = False
        self._pump_task = asyncio.get_running_loop().create_task(
            self._pump(), name=f"relay-pump-{name}"
        )

    @property
    def active(self) -> bool:
        return not self._closed

    def deliver(self, payload: dict) -> None:
        if not self._closed:
            self._mailbox.put_nowait(payload)

    async def _pump(self) -> None:
        while True:
            payload = await self._mailbox.get()
            try:
                event = parse_lifecycle_event(payload)
                result = self._handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Viewer handler failed",
                    subscriber=self.name,
                    action=payload.get("action"),
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
            finally:
                self._mailbox.task_done()

    async def join(self) -> None:
        await self._mailbox.join()

    def unsubscribe(self) -> None:
        """Detach from the relay. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._relay._detach(self)
        self._pump_task.cancel()
        while not self._mailbox.empty():
            self._mailbox.get_nowait()
            self._mailbox.task_done()

    async def wait_closed(self) -> None:
        await asyncio.gather(self._pump_task, return_exceptions=True)


class CrossContextRelay:
    """Fan-out of lifecycle events from the background to viewers."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._counter = 0
        self.stats = {"published": 0, "delivered": 0, "dropped": 0}

    def subscribe(self, handler: EventHandler, name: str | None = None) -> Subscription:
        """Attach a viewer handler. Must be called from a running event loop."""
        self._counter += 1
        subscription = Subscription(self, handler, name or f"viewer-{self._counter}")
        self._subscriptions.append(subscription)
        logger.debug("Viewer subscribed", subscriber=subscription.name)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Viewer unsubscribed", subscriber=subscription.name)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: RelayMessage) -> int:
        """
        Send an event to every attached viewer.

        Returns the number of viewers it was handed to; 0 means it was dropped.
        """
        payload = to_wire(event)
        self.stats["published"] += 1
        if not self._subscriptions:
            self.stats["dropped"] += 1
            logger.debug(
                "No viewer attached, event dropped",
                action=payload.get("action"),
                stream_id=payload.get("streamId"),
            )
            return 0

        for subscription in list(self._subscriptions):
            subscription.deliver(dict(payload))
        self.stats["delivered"] += len(self._subscriptions)
        return len(self._subscriptions)

    async def flush(self) -> None:
        """Wait until every attached viewer has handled what was published."""
        await asyncio.gather(*(s.join() for s in list(self._subscriptions)))

    async def aclose(self) -> None:
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.unsubscribe()
        await asyncio.gather(*(s.wait_closed() for s in subscriptions))
