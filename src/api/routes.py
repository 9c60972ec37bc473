"""FastAPI routes exposing call control to the presentation layer."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from api.dependencies import get_orchestrator
from api.schemas import (
    AudioRouteRequest,
    AudioRouteResponse,
    CallRequestResponse,
    CallResponse,
    DigitsRequest,
    HoldRequest,
    MicrophonePromptResponse,
    MuteRequest,
    PlaceCallRequest,
)
from calls.addressing import sanitize_dial_string
from calls.errors import CallError, MicrophonePermissionRequired, RequestDeniedError, UnknownCallError
from calls.events import event_payload
from calls.orchestrator import CallOrchestrator
from calls.permissions import microphone_prompt_for

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["calls"])


def _http_error(error: CallError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)


@router.get("/calls", response_model=list[CallResponse])
async def list_calls(
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> list[CallResponse]:
    return [CallResponse.from_snapshot(snapshot) for snapshot in orchestrator.snapshots()]


@router.get("/calls/{call_id}", response_model=CallResponse)
async def get_call(
    call_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> CallResponse:
    snapshot = orchestrator.get_snapshot(call_id)
    if snapshot is None:
        raise _http_error(UnknownCallError())
    return CallResponse.from_snapshot(snapshot)


@router.post("/calls", response_model=CallRequestResponse, status_code=202)
async def place_call(
    body: PlaceCallRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> CallRequestResponse:
    if not sanitize_dial_string(body.to):
        raise HTTPException(status_code=422, detail="Destination is empty after removing formatting.")

    prompt = microphone_prompt_for(
        body.microphone_permission,
        continue_without_microphone=body.continue_without_microphone,
    )
    if prompt is not None:
        detail = MicrophonePromptResponse(title=prompt.title, message=prompt.message, choices=list(prompt.choices))
        raise HTTPException(status_code=MicrophonePermissionRequired.status_code, detail=detail.model_dump(mode="json"))

    call_id = await orchestrator.place_call(body.to)
    if call_id is None:
        raise _http_error(RequestDeniedError())
    return CallRequestResponse(call_id=call_id)


@router.post("/calls/{call_id}/end", response_model=CallRequestResponse, status_code=202)
async def end_call(
    call_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> CallRequestResponse:
    if not await orchestrator.end_call(call_id):
        raise _http_error(RequestDeniedError())
    return CallRequestResponse(call_id=call_id)


@router.post("/calls/{call_id}/hold", response_model=CallRequestResponse, status_code=202)
async def set_hold(
    call_id: str,
    body: HoldRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> CallRequestResponse:
    if not await orchestrator.set_hold(call_id, body.on_hold):
        raise _http_error(RequestDeniedError())
    return CallRequestResponse(call_id=call_id)


@router.post("/calls/{call_id}/mute", response_model=CallRequestResponse, status_code=202)
async def set_mute(
    call_id: str,
    body: MuteRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> CallRequestResponse:
    if not await orchestrator.set_mute(call_id, body.muted):
        raise _http_error(RequestDeniedError())
    return CallRequestResponse(call_id=call_id)


@router.post("/calls/{call_id}/digits", response_model=CallRequestResponse, status_code=202)
async def play_digits(
    call_id: str,
    body: DigitsRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> CallRequestResponse:
    if not await orchestrator.play_digits(call_id, body.digits):
        raise _http_error(RequestDeniedError())
    return CallRequestResponse(call_id=call_id)


@router.put("/audio/route", response_model=AudioRouteResponse)
async def set_audio_route(
    body: AudioRouteRequest,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> AudioRouteResponse:
    return AudioRouteResponse(speaker=orchestrator.toggle_audio_route(body.speaker))


@router.get("/audio/route", response_model=AudioRouteResponse)
async def get_audio_route(
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> AudioRouteResponse:
    return AudioRouteResponse(speaker=orchestrator.is_speaker_output)


@router.websocket("/calls/events")
async def call_events(
    websocket: WebSocket,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> None:
    await websocket.accept()
    queue, unsubscribe = orchestrator.events.subscribe_queue(maxsize=256)

    async def _forward() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event_payload(event))

    async def _until_disconnect() -> None:
        # Inbound frames of any kind are ignored.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks: set[asyncio.Task] = set()
    try:
        await websocket.send_json(
            {
                "event": "snapshot",
                "calls": [
                    CallResponse.from_snapshot(snapshot).model_dump(mode="json")
                    for snapshot in orchestrator.snapshots()
                ],
            }
        )
        tasks = {asyncio.create_task(_forward()), asyncio.create_task(_until_disconnect())}
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = None if task.cancelled() else task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                LOGGER.error("Call events stream failed: %s", error)
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        for task in tasks:
            task.cancel()
        LOGGER.debug("Call events subscriber disconnected")
