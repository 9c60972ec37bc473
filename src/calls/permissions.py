"""Microphone permission handling before dialing.

A denied permission never blocks dialing; the user is offered a choice
instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from calls.errors import MicrophonePermissionRequired


class RecordPermission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class PromptChoice(str, Enum):
    CONTINUE_WITHOUT_MICROPHONE = "continue_without_microphone"
    OPEN_SETTINGS = "open_settings"
    CANCEL = "cancel"


@dataclass(frozen=True)
class MicrophonePrompt:
    title: str = "Microphone Permission Required"
    message: str = MicrophonePermissionRequired.default_detail
    choices: tuple[PromptChoice, ...] = field(
        default=(
            PromptChoice.CONTINUE_WITHOUT_MICROPHONE,
            PromptChoice.OPEN_SETTINGS,
            PromptChoice.CANCEL,
        )
    )


def microphone_prompt_for(
    permission: RecordPermission,
    *,
    continue_without_microphone: bool = False,
) -> MicrophonePrompt | None:
    """Return the prompt to show, or None when the call can be placed right away.

    An undetermined permission is resolved by the client's own system prompt
    before it reaches us, so only an explicit denial produces a prompt.
    """

    if permission is RecordPermission.DENIED and not continue_without_microphone:
        return MicrophonePrompt()
    return None
