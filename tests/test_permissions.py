from __future__ import annotations

from calls.permissions import PromptChoice, RecordPermission, microphone_prompt_for


def test_denied_permission_prompts_with_three_choices():
    prompt = microphone_prompt_for(RecordPermission.DENIED)

    assert prompt is not None
    assert prompt.title == "Microphone Permission Required"
    assert prompt.message.startswith("Phone calls require permission to use your microphone.")
    assert prompt.choices == (
        PromptChoice.CONTINUE_WITHOUT_MICROPHONE,
        PromptChoice.OPEN_SETTINGS,
        PromptChoice.CANCEL,
    )


def test_continue_without_microphone_skips_prompt():
    assert microphone_prompt_for(RecordPermission.DENIED, continue_without_microphone=True) is None


def test_granted_or_undetermined_permission_dials_directly():
    assert microphone_prompt_for(RecordPermission.GRANTED) is None
    assert microphone_prompt_for(RecordPermission.UNDETERMINED) is None
