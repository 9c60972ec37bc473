"""Call-management surface abstractions.

The surface owns the system call UI and mediates every lifecycle change: the
orchestrator requests a transaction, and once granted the surface hands the
action back through a `CallActionSink`, which must fulfill or fail it.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from calls.models import CallHandle


class CallEndedReason(str, Enum):
    FAILED = "failed"
    REMOTE_ENDED = "remoteEnded"
    UNANSWERED = "unanswered"
    ANSWERED_ELSEWHERE = "answeredElsewhere"
    DECLINED_ELSEWHERE = "declinedElsewhere"


@dataclass(frozen=True, slots=True)
class CallUpdate:
    remote_handle: CallHandle
    has_video: bool = False
    supports_dtmf: bool = True
    supports_holding: bool = True
    supports_grouping: bool = False
    supports_ungrouping: bool = False


def call_update_for(handle: CallHandle) -> CallUpdate:
    return CallUpdate(remote_handle=handle)


@dataclass(kw_only=True)
class CallAction:
    """A granted transition that the action sink must answer exactly once."""

    call_id: str
    outcome: bool | None = field(default=None, init=False)
    _answered: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def is_complete(self) -> bool:
        return self.outcome is not None

    def fulfill(self) -> None:
        self._answer(True)

    def fail(self) -> None:
        self._answer(False)

    def _answer(self, outcome: bool) -> None:
        if self.outcome is not None:
            return
        self.outcome = outcome
        self._answered.set()

    async def wait(self) -> bool:
        await self._answered.wait()
        return bool(self.outcome)


@dataclass(kw_only=True)
class StartCallAction(CallAction):
    handle: CallHandle


@dataclass(kw_only=True)
class AnswerCallAction(CallAction):
    pass


@dataclass(kw_only=True)
class EndCallAction(CallAction):
    pass


@dataclass(kw_only=True)
class SetHeldCallAction(CallAction):
    on_hold: bool


@dataclass(kw_only=True)
class SetMutedCallAction(CallAction):
    muted: bool


@dataclass(kw_only=True)
class PlayDigitsCallAction(CallAction):
    digits: str


class CallActionSink(Protocol):
    """Performs actions the surface has granted."""

    async def perform_start(self, action: StartCallAction) -> None:  # pragma: no cover - protocol stub
        ...

    async def perform_answer(self, action: AnswerCallAction) -> None:  # pragma: no cover - protocol stub
        ...

    async def perform_end(self, action: EndCallAction) -> None:  # pragma: no cover - protocol stub
        ...

    async def perform_set_held(self, action: SetHeldCallAction) -> None:  # pragma: no cover - protocol stub
        ...

    async def perform_set_muted(self, action: SetMutedCallAction) -> None:  # pragma: no cover - protocol stub
        ...

    async def perform_play_digits(self, action: PlayDigitsCallAction) -> None:  # pragma: no cover
        ...

    async def did_reset(self) -> None:  # pragma: no cover - protocol stub
        ...

    async def did_activate_audio(self) -> None:  # pragma: no cover - protocol stub
        ...

    async def did_deactivate_audio(self) -> None:  # pragma: no cover - protocol stub
        ...

    async def timed_out_performing(self, action: CallAction) -> None:  # pragma: no cover - protocol stub
        ...


class CallManagementSurface(ABC):
    """Abstract base class for system call-management facilities."""

    @abstractmethod
    def bind(self, actions: CallActionSink) -> None:
        """Register the sink that performs granted actions."""

    @abstractmethod
    async def request_transaction(self, action: CallAction) -> None:
        """Ask for a transition. Raises `RequestDeniedError` when refused."""

    @abstractmethod
    async def report_new_incoming_call(self, call_id: str, update: CallUpdate) -> None:
        """Ring the user. Raises `SurfaceReportError` when the call cannot be shown."""

    @abstractmethod
    async def report_call_updated(self, call_id: str, update: CallUpdate) -> None:
        ...

    @abstractmethod
    async def report_outgoing_started_connecting(self, call_id: str) -> None:
        ...

    @abstractmethod
    async def report_outgoing_connected(self, call_id: str) -> None:
        ...

    @abstractmethod
    async def report_call_ended(self, call_id: str, reason: CallEndedReason) -> None:
        ...
