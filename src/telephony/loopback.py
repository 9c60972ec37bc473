"""In-process telephony transport.

Calls never leave the process. With `auto_progress` dialing schedules ringing
and connected events on the running loop and hang-ups report a disconnect;
without it the remote side is driven explicitly through the remote controls.
A call is dropped from `calls` once its disconnect is reported. Push payloads
use the Twilio Voice message shape (`twi_message_type`, `twi_call_sid`, ...),
either as a mapping or as JSON bytes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from calls.errors import InvalidNotificationError, TransportError
from calls.models import CancelledInvite, Invite
from telephony.base import (
    AudioDevice,
    PushNotification,
    TelephonyTransport,
    TransportCall,
    TransportEventSink,
)

LOGGER = logging.getLogger(__name__)

MESSAGE_TYPE_CALL = "twilio.voice.call"
MESSAGE_TYPE_CANCEL = "twilio.voice.cancel"
REJECTED_HISTORY = 100


class LoopbackAudioDevice(AudioDevice):
    def __init__(self) -> None:
        self.enabled = False
        self.speaker = False

    def override_output(self, *, speaker: bool) -> None:
        self.speaker = speaker


@dataclass
class LoopbackCall(TransportCall):
    call_id: str
    address: str
    events: TransportEventSink = field(repr=False)
    sid: str | None = field(default_factory=lambda: f"CA{uuid.uuid4().hex}")
    auto_progress: bool = True
    on_release: Callable[[str], None] | None = field(default=None, repr=False)
    muted: bool = False
    on_hold: bool = False
    digits: list[str] = field(default_factory=list)
    disconnected: bool = False

    async def disconnect(self) -> None:
        if self.disconnected:
            return
        self.disconnected = True
        if self.auto_progress:
            if self.on_release is not None:
                self.on_release(self.call_id)
            _schedule(self.events.call_did_disconnect(self.call_id, None))

    async def set_muted(self, muted: bool) -> None:
        self.muted = muted

    async def set_on_hold(self, on_hold: bool) -> None:
        self.on_hold = on_hold

    async def send_digits(self, digits: str) -> None:
        if self.disconnected:
            raise TransportError(f"Call {self.call_id} is disconnected")
        self.digits.append(digits)


_BACKGROUND_TASKS: set[asyncio.Task] = set()


def _schedule(coro) -> asyncio.Task:
    # Events are delivered on a later loop iteration, never re-entrantly.
    task = asyncio.get_running_loop().create_task(coro)
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_BACKGROUND_TASKS.discard)
    return task


class LoopbackTransport(TelephonyTransport):
    def __init__(self, *, auto_progress: bool = True) -> None:
        self.audio = LoopbackAudioDevice()
        self._auto_progress = auto_progress
        self.calls: dict[str, LoopbackCall] = {}
        self.rejected: deque[str] = deque(maxlen=REJECTED_HISTORY)

    async def connect(self, *, address: str, call_id: str, events: TransportEventSink) -> TransportCall:
        if not address:
            raise TransportError("No destination address")
        call = LoopbackCall(
            call_id=call_id,
            address=address,
            events=events,
            auto_progress=self._auto_progress,
            on_release=self._release,
        )
        self.calls[call_id] = call
        LOGGER.info("Loopback dialing %s (call=%s)", address, call_id)
        if self._auto_progress:
            _schedule(self._ring_then_connect(call))
        return call

    async def accept(self, invite: Invite, *, events: TransportEventSink) -> TransportCall:
        call = LoopbackCall(
            call_id=invite.call_id,
            address=invite.from_address or "",
            events=events,
            sid=invite.call_sid,
            auto_progress=self._auto_progress,
            on_release=self._release,
        )
        self.calls[invite.call_id] = call
        if self._auto_progress:
            _schedule(events.call_did_connect(call.call_id))
        return call

    async def reject(self, invite: Invite) -> None:
        self.rejected.append(invite.call_id)

    def decode_notification(self, payload: Mapping[str, Any] | bytes) -> PushNotification:
        if isinstance(payload, (bytes, bytearray)):
            try:
                payload = json.loads(payload)
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise InvalidNotificationError("Push payload is not valid JSON") from exc
        if not isinstance(payload, Mapping):
            raise InvalidNotificationError()

        message_type = str(payload.get("twi_message_type") or "")
        call_sid = str(payload.get("twi_call_sid") or "")
        if not call_sid:
            raise InvalidNotificationError("Push payload has no call sid")

        if message_type == MESSAGE_TYPE_CALL:
            return Invite(
                call_id=str(uuid.uuid4()),
                call_sid=call_sid,
                from_address=payload.get("twi_from"),
                to_address=payload.get("twi_to"),
            )
        if message_type == MESSAGE_TYPE_CANCEL:
            return CancelledInvite(
                call_sid=call_sid,
                from_address=payload.get("twi_from"),
                to_address=payload.get("twi_to"),
                reason="Call invite cancelled",
            )
        raise InvalidNotificationError(f"Unsupported message type: {message_type or 'missing'}")

    # Remote-side controls

    async def remote_answer(self, call_id: str) -> None:
        call = self._get(call_id)
        await call.events.call_did_connect(call_id)

    async def remote_hangup(self, call_id: str, error: Exception | None = None) -> None:
        call = self._get(call_id)
        call.disconnected = True
        self._release(call_id)
        await call.events.call_did_disconnect(call_id, error)

    async def fail_call(self, call_id: str, error: Exception | None = None) -> None:
        call = self._get(call_id)
        call.disconnected = True
        self._release(call_id)
        await call.events.call_did_fail_to_connect(call_id, error or TransportError("Call failed"))

    def _release(self, call_id: str) -> None:
        self.calls.pop(call_id, None)

    def _get(self, call_id: str) -> LoopbackCall:
        try:
            return self.calls[call_id]
        except KeyError:
            raise TransportError(f"Unknown loopback call {call_id}") from None

    @staticmethod
    async def _ring_then_connect(call: LoopbackCall) -> None:
        await call.events.call_did_start_ringing(call.call_id)
        await asyncio.sleep(0)
        if not call.disconnected:
            await call.events.call_did_connect(call.call_id)
