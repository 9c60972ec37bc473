from __future__ import annotations

import logging

from calls.errors import AudioRouteError
from telephony.base import AudioDevice

LOGGER = logging.getLogger(__name__)


class AudioRouter:
    """Process-wide output route and audio device enablement."""

    def __init__(self, device: AudioDevice) -> None:
        self._device = device
        self.is_speaker_output = False

    @property
    def enabled(self) -> bool:
        return self._device.enabled

    def set_enabled(self, enabled: bool) -> None:
        self._device.enabled = enabled

    def route_to(self, *, speaker: bool) -> bool:
        """Override the output port; returns the effective speaker state."""

        try:
            self._device.override_output(speaker=speaker)
        except AudioRouteError as exc:
            LOGGER.error("Output override failed: %s", exc.detail)
            return self.is_speaker_output

        self.is_speaker_output = speaker
        return self.is_speaker_output
