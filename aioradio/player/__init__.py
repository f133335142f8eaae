"""Public interface for the aioradio player package."""

from .audio import PCMFormat
from .controller import PlaybackController, StateCallback
from .session import AudioSession, LoggingAudioSession
from .source import StreamEventCallback, StreamHandle, StreamSource

__all__ = [
    "AudioSession",
    "LoggingAudioSession",
    "PCMFormat",
    "PlaybackController",
    "StateCallback",
    "StreamEventCallback",
    "StreamHandle",
    "StreamSource",
]
