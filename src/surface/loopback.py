"""In-process call-management surface.

Grants transactions for calls it knows about, enforces the configured call
capacity for new outgoing calls and hands granted actions straight to the
bound action sink. Every report is recorded so the state can be inspected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from calls.errors import RequestDeniedError, SurfaceReportError
from surface.base import (
    AnswerCallAction,
    CallAction,
    CallActionSink,
    CallEndedReason,
    CallManagementSurface,
    CallUpdate,
    EndCallAction,
    PlayDigitsCallAction,
    SetHeldCallAction,
    SetMutedCallAction,
    StartCallAction,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SurfaceReport:
    kind: str
    call_id: str
    detail: Any = None


class LoopbackSurface(CallManagementSurface):
    def __init__(self, *, max_call_groups: int = 2, max_calls_per_call_group: int = 1) -> None:
        self._actions: CallActionSink | None = None
        self._max_calls = max_call_groups * max_calls_per_call_group
        self.known_calls: set[str] = set()
        self.reports: list[SurfaceReport] = []
        self.refuse_incoming = False

    def bind(self, actions: CallActionSink) -> None:
        self._actions = actions

    async def request_transaction(self, action: CallAction) -> None:
        if self._actions is None:
            raise RequestDeniedError("No action sink is bound")

        if isinstance(action, StartCallAction):
            if len(self.known_calls) >= self._max_calls:
                raise RequestDeniedError("Maximum number of calls reached")
            self._track(action.call_id)
        elif action.call_id not in self.known_calls:
            raise RequestDeniedError(f"Unknown call {action.call_id}")

        await self._dispatch(action)

        if isinstance(action, EndCallAction) or (
            isinstance(action, (StartCallAction, AnswerCallAction)) and action.outcome is False
        ):
            await self._forget(action.call_id)

    async def answer(self, call_id: str) -> AnswerCallAction:
        """Simulate the user accepting a ringing call on the system UI."""

        action = AnswerCallAction(call_id=call_id)
        await self.request_transaction(action)
        return action

    async def decline(self, call_id: str) -> EndCallAction:
        action = EndCallAction(call_id=call_id)
        await self.request_transaction(action)
        return action

    async def report_new_incoming_call(self, call_id: str, update: CallUpdate) -> None:
        if self.refuse_incoming:
            raise SurfaceReportError("Incoming calls are currently refused")
        if len(self.known_calls) >= self._max_calls:
            raise SurfaceReportError("Maximum number of calls reached")
        self.reports.append(SurfaceReport("incoming", call_id, update))
        self._track(call_id)

    async def report_call_updated(self, call_id: str, update: CallUpdate) -> None:
        self.reports.append(SurfaceReport("updated", call_id, update))

    async def report_outgoing_started_connecting(self, call_id: str) -> None:
        self.reports.append(SurfaceReport("started_connecting", call_id))

    async def report_outgoing_connected(self, call_id: str) -> None:
        self.reports.append(SurfaceReport("connected", call_id))

    async def report_call_ended(self, call_id: str, reason: CallEndedReason) -> None:
        self.reports.append(SurfaceReport("ended", call_id, reason))
        await self._forget(call_id)

    def reports_for(self, call_id: str) -> list[SurfaceReport]:
        return [report for report in self.reports if report.call_id == call_id]

    def _track(self, call_id: str) -> None:
        self.known_calls.add(call_id)

    async def _forget(self, call_id: str) -> None:
        if call_id not in self.known_calls:
            return
        self.known_calls.discard(call_id)
        if not self.known_calls and self._actions is not None:
            await self._actions.did_deactivate_audio()

    async def _dispatch(self, action: CallAction) -> None:
        assert self._actions is not None
        if isinstance(action, StartCallAction):
            await self._actions.perform_start(action)
        elif isinstance(action, AnswerCallAction):
            await self._actions.perform_answer(action)
        elif isinstance(action, EndCallAction):
            await self._actions.perform_end(action)
        elif isinstance(action, SetHeldCallAction):
            await self._actions.perform_set_held(action)
        elif isinstance(action, SetMutedCallAction):
            await self._actions.perform_set_muted(action)
        elif isinstance(action, PlayDigitsCallAction):
            await self._actions.perform_play_digits(action)
        else:
            raise RequestDeniedError(f"Unsupported action {type(action).__name__}")

        if isinstance(action, (StartCallAction, AnswerCallAction)) and action.outcome is not False:
            await self._actions.did_activate_audio()
