from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from calls.events import CallEventBus
from calls.models import CallDirection, CallEvent, CallSnapshot, CallStatus
from integrations.events_webhook import CallEventsWebhook

SNAPSHOT = CallSnapshot(
    call_id="c1",
    direction=CallDirection.INBOUND,
    remote_address="bob",
    status=CallStatus.CONNECTED,
    muted=True,
    on_hold=False,
)


def test_dispatch_posts_event_payload_with_bearer_token():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    webhook = CallEventsWebhook("https://example.test/calls/", "secret", transport=httpx.MockTransport(handler))

    asyncio.run(webhook.dispatch(CallEvent(kind="updated", snapshot=SNAPSHOT)))

    request = requests[0]
    assert str(request.url) == "https://example.test/calls"
    assert request.headers["Authorization"] == "Bearer secret"
    body = json.loads(request.content)
    assert body["event"] == "updated"
    assert body["call"]["muted"] is True


def test_dispatch_raises_on_error_status():
    webhook = CallEventsWebhook(
        "https://example.test/calls",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(webhook.dispatch(CallEvent(kind="removed", snapshot=SNAPSHOT)))


def test_attached_webhook_forwards_bus_events_and_survives_failures():
    statuses = iter([503, 200])
    delivered = []

    def handler(request: httpx.Request) -> httpx.Response:
        delivered.append(json.loads(request.content)["event"])
        return httpx.Response(next(statuses))

    async def scenario():
        bus = CallEventBus()
        webhook = CallEventsWebhook("https://example.test/calls", transport=httpx.MockTransport(handler))
        webhook.attach(bus)
        bus.added(SNAPSHOT)
        bus.removed(SNAPSHOT)
        for _ in range(50):
            await asyncio.sleep(0)
            if len(delivered) == 2 and not webhook._tasks:
                break
        webhook.detach()
        bus.updated(SNAPSHOT)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert sorted(delivered) == ["added", "removed"]


def test_empty_endpoint_is_rejected():
    with pytest.raises(ValueError):
        CallEventsWebhook("")
