"""Domain-specific exceptions for call orchestration.

These exceptions are safe to import from API layers and from collaborator
implementations without pulling in the orchestrator itself.
"""

from __future__ import annotations


class CallError(Exception):
    status_code: int = 500
    default_detail: str = "Call error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class RequestDeniedError(CallError):
    """The call-management surface refused a transaction."""

    status_code = 409
    default_detail = "Call request denied."


class UnknownCallError(CallError):
    status_code = 404
    default_detail = "No call matches the given identifier."


class TransportError(CallError):
    status_code = 502
    default_detail = "Telephony transport failure."


class InvalidTransitionError(CallError):
    status_code = 409
    default_detail = "Invalid call state transition."


class InvalidNotificationError(CallError):
    status_code = 400
    default_detail = "Push payload is not a call notification."


class SurfaceReportError(CallError):
    status_code = 502
    default_detail = "Call-management surface rejected the report."


class AudioRouteError(CallError):
    status_code = 500
    default_detail = "Unable to override the audio output route."


class MicrophonePermissionRequired(CallError):
    status_code = 428
    default_detail = (
        "Phone calls require permission to use your microphone. "
        "This can be enabled in Settings."
    )
