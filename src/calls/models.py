"""In-memory call records owned by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Literal

from calls.errors import InvalidTransitionError

if TYPE_CHECKING:  # pragma: no cover
    from telephony.base import TransportCall


class CallDirection(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class CallStatus(str, Enum):
    CONNECTING = "connecting"
    RINGING = "ringing"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


_ALLOWED_TRANSITIONS: dict[CallStatus, frozenset[CallStatus]] = {
    CallStatus.CONNECTING: frozenset(
        {CallStatus.RINGING, CallStatus.CONNECTED, CallStatus.DISCONNECTING}
    ),
    CallStatus.RINGING: frozenset({CallStatus.CONNECTED, CallStatus.DISCONNECTING}),
    CallStatus.CONNECTED: frozenset({CallStatus.DISCONNECTING}),
    CallStatus.DISCONNECTING: frozenset(),
}


class HandleType(str, Enum):
    PHONE_NUMBER = "phone_number"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class CallHandle:
    """Identity of the remote party as shown by the call-management surface."""

    type: HandleType
    value: str


@dataclass(frozen=True, slots=True)
class Invite:
    """A pending inbound call that has not been answered or rejected yet.

    `call_sid` is the transport-level correlation id; cancellation notices
    carry only this value, never `call_id`.
    """

    call_id: str
    call_sid: str
    from_address: str | None = None
    to_address: str | None = None


@dataclass(frozen=True, slots=True)
class CancelledInvite:
    call_sid: str
    from_address: str | None = None
    to_address: str | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class CallSnapshot:
    call_id: str
    direction: CallDirection
    remote_address: str
    status: CallStatus
    muted: bool
    on_hold: bool


CallEventKind = Literal["added", "updated", "removed"]


@dataclass(frozen=True, slots=True)
class CallEvent:
    kind: CallEventKind
    snapshot: CallSnapshot


@dataclass(slots=True)
class Session:
    """An active or in-progress call.

    `muted` and `on_hold` are authoritative here; the transport call only
    receives them as hints.
    """

    call_id: str
    direction: CallDirection
    remote_address: str
    transport_call: TransportCall = field(repr=False)
    status: CallStatus = CallStatus.CONNECTING
    muted: bool = False
    on_hold: bool = False
    user_initiated_teardown: bool = False

    @property
    def is_outbound(self) -> bool:
        return self.direction is CallDirection.OUTBOUND

    def transition(self, status: CallStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Call {self.call_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def snapshot(self) -> CallSnapshot:
        return CallSnapshot(
            call_id=self.call_id,
            direction=self.direction,
            remote_address=self.remote_address,
            status=self.status,
            muted=self.muted,
            on_hold=self.on_hold,
        )
