"""Models for enum and event types used by aioradio."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PlaybackState(Enum):
    """Enum for playback controller states."""

    IDLE = "idle"
    """Nothing has been played yet."""
    BUFFERING = "buffering"
    """A stream is opening, filling its buffer, or waiting for a retry."""
    PLAYING = "playing"
    PAUSED = "paused"
    FAILED = "failed"
    """Retries are exhausted; only an explicit play() leaves this state."""

    @property
    def is_active(self) -> bool:
        """Return True if a live stream is expected to exist in this state."""
        return self in (PlaybackState.PLAYING, PlaybackState.BUFFERING)


class InterruptionType(Enum):
    """Enum for audio session interruption signals."""

    BEGAN = "began"
    ENDED = "ended"


class RouteChangeReason(Enum):
    """Enum for audio route change reasons."""

    NEW_DEVICE_AVAILABLE = "new_device_available"
    OLD_DEVICE_UNAVAILABLE = "old_device_unavailable"
    CATEGORY_CHANGE = "category_change"
    OVERRIDE = "override"
    UNKNOWN = "unknown"


class TransportCommand(Enum):
    """Enum for commands received from OS-level media controls."""

    PLAY = "play"
    PAUSE = "pause"
    TOGGLE_PLAY_PAUSE = "togglePlayPause"


# Stream events


class StreamEvent:
    """Base class for events emitted by a stream handle."""


@dataclass(frozen=True, slots=True)
class ReadyToPlay(StreamEvent):
    """Enough audio is buffered to start playback."""


@dataclass(frozen=True, slots=True)
class StreamFailed(StreamEvent):
    """The stream could not be opened or broke down."""

    reason: str


@dataclass(frozen=True, slots=True)
class Stalled(StreamEvent):
    """The stream stopped delivering audio in time."""


@dataclass(slots=True)
class RetryBudget:
    """Bookkeeping for automatic stream recreation."""

    max_attempts: int = 3
    backoff_seconds: float = 2.0
    attempt_count: int = 0

    def __post_init__(self) -> None:
        """Validate the budget limits."""
        if self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")

    @property
    def exhausted(self) -> bool:
        """Return True if no automatic attempt is left."""
        return self.attempt_count >= self.max_attempts

    def consume(self) -> int:
        """Use up one attempt and return the new attempt count."""
        self.attempt_count += 1
        return self.attempt_count

    def reset(self) -> None:
        """Give back all attempts."""
        self.attempt_count = 0
