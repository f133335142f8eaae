"""Host audio session integration."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class AudioSession(Protocol):
    """
    Claim on the host's audio output.

    Platforms that arbitrate audio between applications implement this to
    (re)activate the playback session; the controller calls activate() before
    playing and again on foreground/background transitions while playing.
    """

    def activate(self) -> None:
        """Claim the audio output for playback."""

    def deactivate(self) -> None:
        """Release the audio output."""


class LoggingAudioSession:
    """Audio session for hosts without session arbitration."""

    def __init__(self) -> None:
        """Create an inactive session."""
        self.active = False

    def activate(self) -> None:
        """Mark the session active."""
        if not self.active:
            logger.debug("Audio session activated")
        self.active = True

    def deactivate(self) -> None:
        """Mark the session inactive."""
        if self.active:
            logger.debug("Audio session deactivated")
        self.active = False
