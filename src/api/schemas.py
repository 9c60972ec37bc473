"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from calls.models import CallDirection, CallSnapshot, CallStatus
from calls.permissions import PromptChoice, RecordPermission


class CallResponse(BaseModel):
    call_id: str
    direction: CallDirection
    remote_address: str
    status: CallStatus
    muted: bool
    on_hold: bool

    @classmethod
    def from_snapshot(cls, snapshot: CallSnapshot) -> CallResponse:
        return cls(
            call_id=snapshot.call_id,
            direction=snapshot.direction,
            remote_address=snapshot.remote_address,
            status=snapshot.status,
            muted=snapshot.muted,
            on_hold=snapshot.on_hold,
        )


class PlaceCallRequest(BaseModel):
    to: str = Field(min_length=1, description="Phone number or client identity, formatting allowed.")
    microphone_permission: RecordPermission = RecordPermission.GRANTED
    continue_without_microphone: bool = False


class CallRequestResponse(BaseModel):
    call_id: str
    status: str = "requested"


class MicrophonePromptResponse(BaseModel):
    title: str
    message: str
    choices: list[PromptChoice]


class HoldRequest(BaseModel):
    on_hold: bool


class MuteRequest(BaseModel):
    muted: bool


class DigitsRequest(BaseModel):
    digits: str = Field(min_length=1, pattern=r"^[0-9*#]+$")


class AudioRouteRequest(BaseModel):
    speaker: bool


class AudioRouteResponse(BaseModel):
    speaker: bool


class PushNotificationResponse(BaseModel):
    type: Literal["invite", "cancel"]
    call_sid: str
    call_id: str | None = None


class RegistrationStatusResponse(BaseModel):
    registration_required: bool
    last_binding: datetime | None = None
