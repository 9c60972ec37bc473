"""Bridge forwarding call snapshots to an external HTTP endpoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from calls.events import CallEventBus, event_payload
from calls.models import CallEvent
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


class CallEventsWebhook:
    """POSTs every call event to the configured webhook URL."""

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if endpoint is None:
            settings = get_settings()
            endpoint = settings.call_events_webhook_url
            api_key = api_key or settings.call_events_webhook_api_key
        if not endpoint:
            raise ValueError("Call events webhook URL is not configured.")
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self, bus: CallEventBus) -> None:
        self._unsubscribe = bus.subscribe(self._on_event, loop=asyncio.get_running_loop())

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_event(self, event: CallEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: CallEvent) -> None:
        try:
            await self.dispatch(event)
        except httpx.HTTPError:
            # Already logged; a missed snapshot is superseded by the next one.
            return

    async def dispatch(self, event: CallEvent) -> None:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            try:
                response = await client.post(
                    self._endpoint,
                    json=event_payload(event),
                    headers=headers,
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                LOGGER.error("Call event webhook dispatch failed: %s", exc)
                raise
