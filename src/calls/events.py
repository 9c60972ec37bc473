"""Snapshot fan-out to the presentation layer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from calls.models import CallEvent, CallSnapshot

LOGGER = logging.getLogger(__name__)

CallEventCallback = Callable[[CallEvent], None]


@dataclass(slots=True)
class _Subscriber:
    callback: CallEventCallback
    loop: asyncio.AbstractEventLoop | None


class CallEventBus:
    """Delivers call events on each subscriber's own event loop.

    Delivery is always scheduled, never run inline, so subscriber code cannot
    observe or re-enter the orchestrator mid-update.
    """

    def __init__(self) -> None:
        self._subscribers: list[_Subscriber] = []

    def subscribe(
        self,
        callback: CallEventCallback,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> Callable[[], None]:
        subscriber = _Subscriber(callback=callback, loop=loop)
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def subscribe_queue(
        self, *, maxsize: int = 0
    ) -> tuple[asyncio.Queue[CallEvent], Callable[[], None]]:
        """Subscribe with a queue bound to the current loop (for streaming consumers)."""

        queue: asyncio.Queue[CallEvent] = asyncio.Queue(maxsize=maxsize)

        def _put(event: CallEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                LOGGER.warning("Dropping %s event for %s: subscriber queue full", event.kind, event.snapshot.call_id)

        unsubscribe = self.subscribe(_put, loop=asyncio.get_running_loop())
        return queue, unsubscribe

    def publish(self, event: CallEvent) -> None:
        for subscriber in list(self._subscribers):
            loop = subscriber.loop or asyncio.get_running_loop()
            try:
                loop.call_soon_threadsafe(subscriber.callback, event)
            except RuntimeError:
                LOGGER.warning("Subscriber loop is closed; unsubscribing")
                self._subscribers.remove(subscriber)

    def added(self, snapshot: CallSnapshot) -> None:
        self.publish(CallEvent(kind="added", snapshot=snapshot))

    def updated(self, snapshot: CallSnapshot) -> None:
        self.publish(CallEvent(kind="updated", snapshot=snapshot))

    def removed(self, snapshot: CallSnapshot) -> None:
        self.publish(CallEvent(kind="removed", snapshot=snapshot))


def event_payload(event: CallEvent) -> dict[str, Any]:
    """JSON-ready representation of an event."""

    snapshot = event.snapshot
    return {
        "event": event.kind,
        "call": {
            "call_id": snapshot.call_id,
            "direction": snapshot.direction.value,
            "remote_address": snapshot.remote_address,
            "status": snapshot.status.value,
            "muted": snapshot.muted,
            "on_hold": snapshot.on_hold,
        },
    }
