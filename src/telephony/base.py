"""Shared abstractions for telephony transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Protocol, Union

from calls.models import CancelledInvite, Invite

PushNotification = Union[Invite, CancelledInvite]

# Transport pause token appended after played digits.
DIGIT_PAUSE = "w"


class TransportEventSink(Protocol):
    """Receives call progress reported by the transport."""

    async def call_did_start_ringing(self, call_id: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def call_did_connect(self, call_id: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def call_did_fail_to_connect(self, call_id: str, error: Exception) -> None:  # pragma: no cover
        ...

    async def call_did_disconnect(self, call_id: str, error: Exception | None = None) -> None:  # pragma: no cover
        ...


class PushEventSink(Protocol):
    """Receives decoded push notifications."""

    async def invite_received(self, invite: Invite) -> None:  # pragma: no cover - protocol stub
        ...

    async def invite_cancelled(self, cancelled: CancelledInvite) -> None:  # pragma: no cover - protocol stub
        ...


class AudioDevice(ABC):
    """Process-wide audio input/output used by the transport."""

    enabled: bool = False

    @abstractmethod
    def override_output(self, *, speaker: bool) -> None:
        """Route output to the loudspeaker (True) or the default receiver (False)."""


class TransportCall(ABC):
    """Transport-owned handle of an established or connecting call."""

    call_id: str
    sid: str | None = None

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down the call; the transport reports completion as an event."""

    @abstractmethod
    async def set_muted(self, muted: bool) -> None:
        ...

    @abstractmethod
    async def set_on_hold(self, on_hold: bool) -> None:
        ...

    @abstractmethod
    async def send_digits(self, digits: str) -> None:
        ...


class TelephonyTransport(ABC):
    """Abstract base class for signaling/media transports."""

    audio: AudioDevice

    @abstractmethod
    async def connect(self, *, address: str, call_id: str, events: TransportEventSink) -> TransportCall:
        """Start an outbound call. Progress is reported to `events`."""

    @abstractmethod
    async def accept(self, invite: Invite, *, events: TransportEventSink) -> TransportCall:
        """Answer a pending invite. Progress is reported to `events`."""

    @abstractmethod
    async def reject(self, invite: Invite) -> None:
        """Decline a pending invite."""

    @abstractmethod
    def decode_notification(self, payload: Mapping[str, Any] | bytes) -> PushNotification:
        """Decode a push payload into an invite or a cancellation.

        Raises `InvalidNotificationError` for anything else.
        """
