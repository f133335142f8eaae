"""Models for the aioradio client."""

from __future__ import annotations

from . import now_playing, types
from .now_playing import NowPlayingResponse, TrackMetadata, parse_track_metadata
from .types import (
    InterruptionType,
    PlaybackState,
    ReadyToPlay,
    RetryBudget,
    RouteChangeReason,
    Stalled,
    StreamEvent,
    StreamFailed,
    TransportCommand,
)

__all__ = [
    "InterruptionType",
    "NowPlayingResponse",
    "PlaybackState",
    "ReadyToPlay",
    "RetryBudget",
    "RouteChangeReason",
    "Stalled",
    "StreamEvent",
    "StreamFailed",
    "TrackMetadata",
    "TransportCommand",
    "now_playing",
    "parse_track_metadata",
    "types",
]
