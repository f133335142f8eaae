"""Sounddevice output for decoded stream audio."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Final

import sounddevice
from sounddevice import CallbackFlags

from .audio import PCMFormat

logger = logging.getLogger(__name__)


class AudioOutput:
    """
    PCM sink backed by a sounddevice raw output stream.

    Decoded audio is appended with submit() from the event loop while the
    sounddevice callback drains it from the audio thread. When the buffer runs
    dry during playback the ``on_underrun`` callback is invoked on the event
    loop, once per underrun.
    """

    _BLOCKSIZE: Final[int] = 4096
    """Frames requested per callback, roughly 90 ms at 44.1 kHz."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_underrun: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize the audio output.

        Args:
            loop: Event loop on which on_underrun is invoked.
            on_underrun: Called when playback runs out of buffered audio.
        """
        self._loop = loop
        self._on_underrun = on_underrun
        self._format: PCMFormat | None = None
        self._stream: sounddevice.RawOutputStream | None = None
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._playing = False
        self._closed = False
        self._underrun_reported = False

    @property
    def format(self) -> PCMFormat | None:
        """Return the configured PCM format."""
        return self._format

    @property
    def playing(self) -> bool:
        """Return True while the output stream is running."""
        return self._playing

    @property
    def buffered_seconds(self) -> float:
        """Return the duration of audio waiting to be played."""
        if self._format is None:
            return 0.0
        with self._lock:
            size = len(self._buffer)
        return size / self._format.bytes_per_second

    def set_format(self, pcm_format: PCMFormat) -> None:
        """Configure the output format, reopening the device stream if it changed."""
        if self._closed:
            raise RuntimeError("Audio output is closed")
        if pcm_format == self._format and self._stream is not None:
            return
        was_playing = self._playing
        self._close_stream()
        self.clear()
        self._format = pcm_format
        self._stream = sounddevice.RawOutputStream(
            samplerate=pcm_format.sample_rate,
            channels=pcm_format.channels,
            dtype="int16",
            blocksize=self._BLOCKSIZE,
            callback=self._audio_callback,
            latency="high",
        )
        logger.debug(
            "Opened audio output: %d Hz, %d channel(s)",
            pcm_format.sample_rate,
            pcm_format.channels,
        )
        if was_playing:
            self.start()

    def submit(self, pcm: bytes) -> None:
        """Queue interleaved PCM bytes for playback."""
        if self._closed or not pcm:
            return
        with self._lock:
            self._buffer.extend(pcm)
            self._underrun_reported = False

    def start(self) -> None:
        """Start or resume playback of buffered audio."""
        if self._closed:
            return
        self._playing = True
        if self._stream is not None and not self._stream.active:
            self._stream.start()

    def pause(self) -> None:
        """Stop playback, keeping buffered audio."""
        self._playing = False
        if self._stream is not None and self._stream.active:
            # abort() returns immediately, stop() would wait for the device to drain
            self._stream.abort()

    def clear(self) -> None:
        """Drop all buffered audio."""
        with self._lock:
            self._buffer.clear()
            self._underrun_reported = False

    def close(self) -> None:
        """Stop playback and release the device."""
        if self._closed:
            return
        self._closed = True
        self._playing = False
        self._close_stream()
        self.clear()

    def _close_stream(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.abort()
            stream.close()
        except sounddevice.PortAudioError:
            logger.debug("Error closing audio output stream", exc_info=True)

    def _audio_callback(
        self,
        outdata: memoryview,
        frames: int,
        time: sounddevice.CallbackTimeInfo,  # noqa: ARG002
        status: CallbackFlags,
    ) -> None:
        """Fill the device buffer from the queued PCM data (audio thread)."""
        if status:
            logger.debug("Audio callback status: %s", status)

        assert self._format is not None
        needed = frames * self._format.frame_size
        with self._lock:
            available = min(needed, len(self._buffer))
            outdata[:available] = self._buffer[:available]
            del self._buffer[:available]
            report = available < needed and not self._underrun_reported
            if report:
                self._underrun_reported = True
        if available < needed:
            outdata[available:needed] = b"\x00" * (needed - available)
        if report and self._playing and self._on_underrun is not None:
            if not self._loop.is_closed():
                self._loop.call_soon_threadsafe(self._on_underrun)
