"""aioradio: asyncio internet radio client with resilient stream playback."""

from __future__ import annotations

from aioradio.config import StationConfig, StreamEndpoint
from aioradio.models import (
    InterruptionType,
    PlaybackState,
    RetryBudget,
    RouteChangeReason,
    TrackMetadata,
    TransportCommand,
)
from aioradio.now_playing import NowPlayingPoller
from aioradio.player import (
    AudioSession,
    LoggingAudioSession,
    PlaybackController,
    StreamHandle,
    StreamSource,
)
from aioradio.sleep_timer import SLEEP_TIMER_PRESETS, SleepTimer
from aioradio.transport import NowPlayingInfo, TransportInfoPublisher

__all__ = [
    "SLEEP_TIMER_PRESETS",
    "AudioSession",
    "InterruptionType",
    "LoggingAudioSession",
    "NowPlayingInfo",
    "NowPlayingPoller",
    "PlaybackController",
    "PlaybackState",
    "RetryBudget",
    "RouteChangeReason",
    "SleepTimer",
    "StationConfig",
    "StreamEndpoint",
    "StreamHandle",
    "StreamSource",
    "TrackMetadata",
    "TransportCommand",
    "TransportInfoPublisher",
]
