"""Call session orchestration.

`CallOrchestrator` keeps the registry of sessions and pending invites
consistent with what the telephony transport and the call-management surface
report. User intents become surface transactions; once the surface grants one
it calls back into `SurfaceActionHandler`, which drives the transport.
Transport progress arrives through `TransportEventHandler` and decoded push
notifications through `PushEventHandler`.

All registry mutation happens under a single asyncio lock. Surface
transactions are requested without holding it, because the surface re-enters
through the action handler.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from calls.addressing import create_handle, format_remote_address, sanitize_dial_string
from calls.audio import AudioRouter
from calls.errors import (
    InvalidTransitionError,
    RequestDeniedError,
    SurfaceReportError,
    TransportError,
)
from calls.events import CallEventBus
from calls.models import (
    CallDirection,
    CallSnapshot,
    CallStatus,
    CancelledInvite,
    Invite,
    Session,
)
from calls.registry import CallRegistry
from push.registration import RegistrationState
from surface.base import (
    AnswerCallAction,
    CallAction,
    CallEndedReason,
    CallManagementSurface,
    EndCallAction,
    PlayDigitsCallAction,
    SetHeldCallAction,
    SetMutedCallAction,
    StartCallAction,
    call_update_for,
)
from telephony.base import DIGIT_PAUSE, PushNotification, TelephonyTransport

LOGGER = logging.getLogger(__name__)

OutcomeCallback = Callable[[bool], Awaitable[None]]


class CallOrchestrator:
    def __init__(
        self,
        surface: CallManagementSurface,
        transport: TelephonyTransport,
        *,
        events: CallEventBus | None = None,
        registration: RegistrationState | None = None,
    ) -> None:
        self._surface = surface
        self._transport = transport
        self._events = events or CallEventBus()
        self._registration = registration
        self._registry = CallRegistry()
        self._lock = asyncio.Lock()
        # Outcome of a dial or answer, resolved by the first terminal transport event.
        self._pending: dict[str, OutcomeCallback] = {}

        self.audio = AudioRouter(transport.audio)
        self.actions = SurfaceActionHandler(self)
        self.transport_events = TransportEventHandler(self)
        self.push_events = PushEventHandler(self)

        surface.bind(self.actions)

    @property
    def events(self) -> CallEventBus:
        return self._events

    @property
    def registry(self) -> CallRegistry:
        return self._registry

    @property
    def registration(self) -> RegistrationState | None:
        return self._registration

    @property
    def is_speaker_output(self) -> bool:
        return self.audio.is_speaker_output

    def snapshots(self) -> list[CallSnapshot]:
        return [session.snapshot() for session in self._registry.sessions()]

    def get_snapshot(self, call_id: str) -> CallSnapshot | None:
        session = self._registry.get_session(call_id)
        return session.snapshot() if session else None

    # User intents

    async def place_call(self, to: str) -> str | None:
        """Ask the surface to start an outbound call; returns its id once granted."""

        handle = create_handle(sanitize_dial_string(to), format=False)
        call_id = str(uuid.uuid4())

        action = StartCallAction(call_id=call_id, handle=handle)
        if not await self._request(action) or action.outcome is False:
            return None

        await self._surface.report_call_updated(call_id, call_update_for(handle))
        return call_id

    async def end_call(self, call_id: str) -> bool:
        async with self._lock:
            session = self._registry.get_session(call_id)
            if session is not None:
                session.user_initiated_teardown = True
            else:
                invite = self._registry.pop_invite(call_id)
                if invite is not None:
                    await self._reject(invite)

        granted = await self._request(EndCallAction(call_id=call_id))
        if not granted:
            async with self._lock:
                session = self._registry.get_session(call_id)
                if session is not None:
                    # The surface still believes the call is live.
                    session.user_initiated_teardown = False
        return granted

    async def set_hold(self, call_id: str, on_hold: bool) -> bool:
        return await self._request(SetHeldCallAction(call_id=call_id, on_hold=on_hold))

    async def set_mute(self, call_id: str, muted: bool) -> bool:
        return await self._request(SetMutedCallAction(call_id=call_id, muted=muted))

    async def play_digits(self, call_id: str, digits: str) -> bool:
        return await self._request(PlayDigitsCallAction(call_id=call_id, digits=digits))

    def toggle_audio_route(self, to_speaker: bool) -> bool:
        return self.audio.route_to(speaker=to_speaker)

    async def _request(self, action: CallAction) -> bool:
        name = type(action).__name__
        try:
            await self._surface.request_transaction(action)
        except RequestDeniedError as exc:
            LOGGER.error("%s transaction request failed: %s", name, exc.detail)
            return False
        LOGGER.debug("%s transaction request successful", name)
        return True

    # Surface actions

    async def _perform_start(self, action: StartCallAction) -> None:
        LOGGER.debug("Performing start call action for %s", action.call_id)
        await self._surface.report_outgoing_started_connecting(action.call_id)

        async with self._lock:
            if action.call_id in self._registry:
                LOGGER.error("Call id %s is already in use", action.call_id)
                action.fail()
                return
            try:
                transport_call = await self._transport.connect(
                    address=action.handle.value,
                    call_id=action.call_id,
                    events=self.transport_events,
                )
            except TransportError as exc:
                LOGGER.error("Unable to connect call %s: %s", action.call_id, exc.detail)
                action.fail()
                return

            session = Session(
                call_id=action.call_id,
                direction=CallDirection.OUTBOUND,
                remote_address=action.handle.value,
                transport_call=transport_call,
            )
            self._registry.add_session(session)
            self._pending[session.call_id] = self._dial_outcome(session.call_id)
            snapshot = session.snapshot()

        self._events.added(snapshot)
        action.fulfill()

    async def _perform_answer(self, action: AnswerCallAction) -> None:
        LOGGER.debug("Performing answer call action for %s", action.call_id)

        snapshot: CallSnapshot | None = None

        async with self._lock:
            invite = self._registry.get_invite(action.call_id)
            if invite is None:
                LOGGER.error("No call invite matches %s", action.call_id)
                action.fail()
                return
            try:
                transport_call = await self._transport.accept(invite, events=self.transport_events)
            except TransportError as exc:
                LOGGER.error("Unable to accept call %s: %s", action.call_id, exc.detail)
                self._registry.pop_invite(invite.call_id)
                await self._reject(invite)
            else:
                session = Session(
                    call_id=invite.call_id,
                    direction=CallDirection.INBOUND,
                    remote_address=format_remote_address(invite.from_address),
                    transport_call=transport_call,
                )
                self._registry.promote_invite(session)
                self._pending[session.call_id] = self._answer_outcome(action)
                snapshot = session.snapshot()

        if snapshot is None:
            # The surface still shows the call ringing.
            action.fail()
            await self._surface.report_call_ended(action.call_id, CallEndedReason.FAILED)
            return

        self._events.added(snapshot)

    async def _perform_end(self, action: EndCallAction) -> None:
        LOGGER.debug("Performing end call action for %s", action.call_id)
        updated: CallSnapshot | None = None
        removed: CallSnapshot | None = None
        outcome: OutcomeCallback | None = None

        async with self._lock:
            invite = self._registry.pop_invite(action.call_id)
            session = self._registry.get_session(action.call_id)
            if invite is not None:
                await self._reject(invite)
            elif session is not None:
                try:
                    await session.transport_call.disconnect()
                except TransportError as exc:
                    LOGGER.error("Disconnect failed for %s: %s", session.call_id, exc.detail)
                    self._registry.pop_session(session.call_id)
                    outcome = self._pending.pop(session.call_id, None)
                    removed = session.snapshot()
                else:
                    if self._transition(session, CallStatus.DISCONNECTING):
                        updated = session.snapshot()
            else:
                # No call is an acceptable end state, so the action still succeeds.
                LOGGER.error("Unknown call id %s to perform end call action with", action.call_id)

        if outcome is not None:
            await outcome(False)
        if updated is not None:
            self._events.updated(updated)
        if removed is not None:
            self._events.removed(removed)
        action.fulfill()

    async def _perform_set_held(self, action: SetHeldCallAction) -> None:
        LOGGER.debug("Performing set held action for %s", action.call_id)

        async with self._lock:
            session = self._registry.get_session(action.call_id)
            if session is None:
                LOGGER.error("Unknown call id %s to perform set held action with", action.call_id)
                action.fail()
                return
            if session.status is not CallStatus.CONNECTED:
                LOGGER.debug("Changing hold on %s call %s", session.status.value, session.call_id)
            try:
                await session.transport_call.set_on_hold(action.on_hold)
            except TransportError as exc:
                LOGGER.error("Hold change failed for %s: %s", session.call_id, exc.detail)
                action.fail()
                return
            session.on_hold = action.on_hold
            snapshot = session.snapshot()

        self._events.updated(snapshot)
        action.fulfill()

    async def _perform_set_muted(self, action: SetMutedCallAction) -> None:
        LOGGER.debug("Performing set muted action for %s", action.call_id)

        async with self._lock:
            session = self._registry.get_session(action.call_id)
            if session is None:
                LOGGER.error("Unknown call id %s to perform set muted action with", action.call_id)
                action.fail()
                return
            if session.status is not CallStatus.CONNECTED:
                LOGGER.debug("Changing mute on %s call %s", session.status.value, session.call_id)
            try:
                await session.transport_call.set_muted(action.muted)
            except TransportError as exc:
                LOGGER.error("Mute change failed for %s: %s", session.call_id, exc.detail)
                action.fail()
                return
            session.muted = action.muted
            snapshot = session.snapshot()

        self._events.updated(snapshot)
        action.fulfill()

    async def _perform_play_digits(self, action: PlayDigitsCallAction) -> None:
        LOGGER.debug("Performing play digits action for %s", action.call_id)

        async with self._lock:
            session = self._registry.get_session(action.call_id)
            if session is None:
                LOGGER.error("Unknown call id %s to perform play digits action with", action.call_id)
                action.fail()
                return
            try:
                await session.transport_call.send_digits(f"{action.digits}{DIGIT_PAUSE}")
            except TransportError as exc:
                LOGGER.error("Sending digits failed for %s: %s", session.call_id, exc.detail)
                action.fail()
                return

        action.fulfill()

    # Transport events

    async def _call_did_connect(self, call_id: str) -> None:
        LOGGER.debug("Call %s did connect", call_id)
        snapshot: CallSnapshot | None = None

        async with self._lock:
            session = self._registry.get_session(call_id)
            if session is not None and self._transition(session, CallStatus.CONNECTED):
                snapshot = session.snapshot()
            outcome = self._pending.pop(call_id, None)

        if snapshot is not None:
            self._events.updated(snapshot)
        if outcome is not None:
            await outcome(snapshot is not None)

    async def _call_did_start_ringing(self, call_id: str) -> None:
        LOGGER.debug("Call %s did start ringing", call_id)
        snapshot: CallSnapshot | None = None

        async with self._lock:
            session = self._registry.get_session(call_id)
            if session is None:
                LOGGER.warning("Ringing reported for unknown call %s", call_id)
            elif not session.is_outbound:
                LOGGER.debug("Ignoring ringing for inbound call %s", call_id)
            elif self._transition(session, CallStatus.RINGING):
                snapshot = session.snapshot()

        if snapshot is not None:
            self._events.updated(snapshot)

    async def _call_did_fail_to_connect(self, call_id: str, error: Exception) -> None:
        LOGGER.debug("Call %s did fail to connect: %s", call_id, error)

        async with self._lock:
            outcome = self._pending.pop(call_id, None)
            session = self._registry.pop_session(call_id)

        if outcome is not None:
            await outcome(False)
        await self._surface.report_call_ended(call_id, CallEndedReason.FAILED)
        if session is not None:
            self._events.removed(session.snapshot())

    async def _call_did_disconnect(self, call_id: str, error: Exception | None) -> None:
        LOGGER.debug("Call %s did disconnect", call_id)

        async with self._lock:
            outcome = self._pending.pop(call_id, None)
            session = self._registry.pop_session(call_id)

        if outcome is not None:
            await outcome(False)

        # A local hang-up was already acknowledged by the surface, and a call
        # without a session was already removed from it.
        if session is None:
            LOGGER.debug("Disconnect for call %s without a session; not reporting", call_id)
        elif not session.user_initiated_teardown:
            reason = CallEndedReason.REMOTE_ENDED if error is None else CallEndedReason.FAILED
            await self._surface.report_call_ended(call_id, reason)

        if session is not None:
            self._events.removed(session.snapshot())

    # Push events

    def _decode_notification(self, payload: Mapping[str, Any] | bytes) -> PushNotification:
        return self._transport.decode_notification(payload)

    async def _invite_received(self, invite: Invite) -> None:
        LOGGER.debug("Call invite received %s (sid=%s)", invite.call_id, invite.call_sid)

        if self._registration is not None:
            try:
                await self._registration.touch_binding()
            except Exception:
                LOGGER.exception("Failed to refresh push binding date")

        async with self._lock:
            if invite.call_id in self._registry:
                LOGGER.error("Call id %s is already in use; ignoring invite", invite.call_id)
                return
            self._registry.add_invite(invite)

        handle = create_handle(invite.from_address, format=True)
        try:
            await self._surface.report_new_incoming_call(invite.call_id, call_update_for(handle))
        except SurfaceReportError as exc:
            LOGGER.error("Failed to report incoming call %s: %s", invite.call_id, exc.detail)
            async with self._lock:
                dropped = self._registry.pop_invite(invite.call_id)
                if dropped is not None:
                    await self._reject(dropped)
            return

        LOGGER.debug("Incoming call %s reported", invite.call_id)

    async def _invite_cancelled(self, cancelled: CancelledInvite) -> None:
        LOGGER.debug("Cancelled call invite received (sid=%s, reason=%s)", cancelled.call_sid, cancelled.reason)

        async with self._lock:
            invite = self._registry.find_invite_by_sid(cancelled.call_sid)

        if invite is None:
            # Raced with an answer or rejection.
            LOGGER.warning("No pending call invite for sid %s", cancelled.call_sid)
            return

        await self.end_call(invite.call_id)

    # Helpers

    async def _reject(self, invite: Invite) -> None:
        try:
            await self._transport.reject(invite)
        except TransportError as exc:
            LOGGER.error("Rejecting invite %s failed: %s", invite.call_id, exc.detail)

    @staticmethod
    def _transition(session: Session, status: CallStatus) -> bool:
        try:
            session.transition(status)
        except InvalidTransitionError as exc:
            LOGGER.warning("Ignoring stale call event: %s", exc.detail)
            return False
        return True

    def _dial_outcome(self, call_id: str) -> OutcomeCallback:
        async def resolve(success: bool) -> None:
            if success:
                LOGGER.debug("Created call %s", call_id)
                await self._surface.report_outgoing_connected(call_id)
            else:
                LOGGER.error("Unable to create call %s", call_id)

        return resolve

    @staticmethod
    def _answer_outcome(action: AnswerCallAction) -> OutcomeCallback:
        async def resolve(success: bool) -> None:
            if success:
                LOGGER.debug("Accepted call %s", action.call_id)
                action.fulfill()
            else:
                LOGGER.error("Unable to accept call %s", action.call_id)
                action.fail()

        return resolve


class SurfaceActionHandler:
    """Performs the actions the call-management surface grants."""

    def __init__(self, orchestrator: CallOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def perform_start(self, action: StartCallAction) -> None:
        await self._orchestrator._perform_start(action)

    async def perform_answer(self, action: AnswerCallAction) -> None:
        await self._orchestrator._perform_answer(action)

    async def perform_end(self, action: EndCallAction) -> None:
        await self._orchestrator._perform_end(action)

    async def perform_set_held(self, action: SetHeldCallAction) -> None:
        await self._orchestrator._perform_set_held(action)

    async def perform_set_muted(self, action: SetMutedCallAction) -> None:
        await self._orchestrator._perform_set_muted(action)

    async def perform_play_digits(self, action: PlayDigitsCallAction) -> None:
        await self._orchestrator._perform_play_digits(action)

    async def did_reset(self) -> None:
        LOGGER.debug("Call-management surface did reset")
        self._orchestrator.audio.set_enabled(False)

    async def did_activate_audio(self) -> None:
        LOGGER.debug("Audio session activated")
        self._orchestrator.audio.set_enabled(True)

    async def did_deactivate_audio(self) -> None:
        LOGGER.debug("Audio session deactivated")
        self._orchestrator.audio.set_enabled(False)

    async def timed_out_performing(self, action: CallAction) -> None:
        LOGGER.debug("Timed out performing %s for %s", type(action).__name__, action.call_id)


class TransportEventHandler:
    """Receives call progress from the telephony transport."""

    def __init__(self, orchestrator: CallOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def call_did_start_ringing(self, call_id: str) -> None:
        await self._orchestrator._call_did_start_ringing(call_id)

    async def call_did_connect(self, call_id: str) -> None:
        await self._orchestrator._call_did_connect(call_id)

    async def call_did_fail_to_connect(self, call_id: str, error: Exception) -> None:
        await self._orchestrator._call_did_fail_to_connect(call_id, error)

    async def call_did_disconnect(self, call_id: str, error: Exception | None = None) -> None:
        await self._orchestrator._call_did_disconnect(call_id, error)


class PushEventHandler:
    """Receives push payloads and the invites decoded from them."""

    def __init__(self, orchestrator: CallOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def handle_notification(self, payload: Mapping[str, Any] | bytes) -> PushNotification:
        """Decode an opaque push payload and dispatch it.

        Raises `InvalidNotificationError` when the payload is not a call
        notification; nothing is dispatched in that case.
        """

        notification = self._orchestrator._decode_notification(payload)
        if isinstance(notification, Invite):
            await self.invite_received(notification)
        else:
            await self.invite_cancelled(notification)
        return notification

    async def invite_received(self, invite: Invite) -> None:
        await self._orchestrator._invite_received(invite)

    async def invite_cancelled(self, cancelled: CancelledInvite) -> None:
        await self._orchestrator._invite_cancelled(cancelled)
