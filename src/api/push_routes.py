"""Push transport endpoints.

The push adapter posts raw notification payloads here; decoding is left to
the telephony transport.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_orchestrator
from api.schemas import PushNotificationResponse, RegistrationStatusResponse
from calls.errors import InvalidNotificationError
from calls.models import Invite
from calls.orchestrator import CallOrchestrator

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/push", tags=["push"])


@router.post("/notifications", response_model=PushNotificationResponse)
async def deliver_notification(
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> PushNotificationResponse:
    payload = await request.body()
    try:
        notification = await orchestrator.push_events.handle_notification(payload)
    except InvalidNotificationError as exc:
        LOGGER.warning("Rejected push payload: %s", exc.detail)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    if isinstance(notification, Invite):
        return PushNotificationResponse(type="invite", call_sid=notification.call_sid, call_id=notification.call_id)
    return PushNotificationResponse(type="cancel", call_sid=notification.call_sid)


@router.get("/registration", response_model=RegistrationStatusResponse)
async def registration_status(
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> RegistrationStatusResponse:
    registration = orchestrator.registration
    if registration is None:
        raise HTTPException(status_code=503, detail="Push registration state is not configured.")
    return RegistrationStatusResponse(
        registration_required=await registration.registration_required(),
        last_binding=await registration.last_binding(),
    )
