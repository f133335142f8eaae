"""Network audio stream source.

A StreamSource opens StreamHandles. Each handle owns one indefinite HTTP GET
on the stream endpoint, decodes the received bytes with PyAV and feeds the
PCM into an audio output. Status changes are reported to the owner through a
single callback, always on the event loop and in the order they occurred.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from contextlib import suppress
from typing import TYPE_CHECKING, Final, Protocol, cast

import av
from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout
from av.logging import Capture

from aioradio.models.types import ReadyToPlay, Stalled, StreamEvent, StreamFailed

from .audio import PCMFormat

if TYPE_CHECKING:
    from aioradio.config import StreamEndpoint

logger = logging.getLogger(__name__)

CONTENT_TYPE_CODECS: Final[dict[str, str]] = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mpeg3": "mp3",
    "audio/aac": "aac",
    "audio/aacp": "aac",
    "audio/x-aac": "aac",
}
"""Stream content types that can be decoded, mapped to their FFmpeg codec."""

URL_SUFFIX_CODECS: Final[dict[str, str]] = {
    ".mp3": "mp3",
    ".aac": "aac",
}


class PCMOutput(Protocol):
    """Sink for decoded PCM audio."""

    @property
    def buffered_seconds(self) -> float:
        """Return the duration of audio waiting to be played."""

    def set_format(self, pcm_format: PCMFormat) -> None:
        """Configure the format of subsequently submitted audio."""

    def submit(self, pcm: bytes) -> None:
        """Queue interleaved PCM bytes."""

    def start(self) -> None:
        """Start or resume playback."""

    def pause(self) -> None:
        """Pause playback, keeping buffered audio."""

    def close(self) -> None:
        """Release the output."""


OutputFactory = Callable[[asyncio.AbstractEventLoop, Callable[[], None]], PCMOutput]
StreamEventCallback = Callable[["StreamHandle", StreamEvent], None]


def _default_output_factory(
    loop: asyncio.AbstractEventLoop, on_underrun: Callable[[], None]
) -> PCMOutput:
    # sounddevice loads PortAudio on import, so only import it once audio is played
    from .output import AudioOutput  # noqa: PLC0415

    return AudioOutput(loop, on_underrun)


def codec_for_stream(content_type: str, url: str = "") -> str | None:
    """Return the FFmpeg codec name for a stream, or None if it is unsupported."""
    mimetype = content_type.split(";", 1)[0].strip().lower()
    if codec := CONTENT_TYPE_CODECS.get(mimetype):
        return codec
    path = url.split("?", 1)[0].lower()
    for suffix, codec in URL_SUFFIX_CODECS.items():
        if path.endswith(suffix):
            return codec
    return None


class StreamHandle:
    """
    One connection to a stream endpoint.

    Events are passed to ``on_event`` together with the emitting handle so the
    owner can ignore handles it has already replaced. After close() no further
    event is delivered, including events that were already queued.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        endpoint: StreamEndpoint,
        session: ClientSession,
        *,
        loop: asyncio.AbstractEventLoop,
        output_factory: OutputFactory,
        on_event: StreamEventCallback,
    ) -> None:
        """Create the handle and start connecting."""
        self.handle_id = next(StreamHandle._ids)
        self._endpoint = endpoint
        self._session = session
        self._loop = loop
        self._on_event = on_event
        self._output = output_factory(loop, self._on_underrun)
        self._pcm_format: PCMFormat | None = None
        self._resampler: av.AudioResampler | None = None
        self._closed = False
        self._paused = False
        self._ready = False
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._task = loop.create_task(self._run(), name=f"aioradio-stream-{self.handle_id}")

    def __repr__(self) -> str:
        """Return a short description for log messages."""
        return f"<StreamHandle #{self.handle_id} {self._endpoint.url}>"

    @property
    def endpoint(self) -> StreamEndpoint:
        """Return the endpoint this handle plays."""
        return self._endpoint

    @property
    def closed(self) -> bool:
        """Return True once close() was called."""
        return self._closed

    @property
    def paused(self) -> bool:
        """Return True while playback is paused."""
        return self._paused

    @property
    def ready(self) -> bool:
        """Return True once ReadyToPlay has been emitted."""
        return self._ready

    def pause(self) -> None:
        """Pause playback and stop reading from the network."""
        if self._closed or self._paused:
            return
        self._paused = True
        self._resume_event.clear()
        self._output.pause()

    def resume(self) -> None:
        """Resume reading, and playback if the buffer is already primed."""
        if self._closed:
            return
        self._paused = False
        self._resume_event.set()
        if self._ready:
            self._output.start()

    def close(self) -> None:
        """Stop the connection and release the output. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._task.cancel()
        try:
            self._output.close()
        except Exception:
            logger.exception("Error closing audio output of %r", self)
        logger.debug("Closed %r", self)

    async def wait_closed(self) -> None:
        """Wait until the network task has finished."""
        with suppress(asyncio.CancelledError):
            await self._task

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _emit(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._loop.call_soon(self._deliver, event)

    def _deliver(self, event: StreamEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s from closed %r", type(event).__name__, self)
            return
        try:
            self._on_event(self, event)
        except Exception:
            logger.exception("Error in stream event callback for %r", self)

    def _on_underrun(self) -> None:
        if self._closed or self._paused or not self._ready:
            return
        logger.warning("%r ran out of buffered audio", self)
        self._emit(Stalled())

    async def _run(self) -> None:
        endpoint = self._endpoint
        timeout = ClientTimeout(
            total=None,
            sock_connect=endpoint.connect_timeout,
            sock_read=endpoint.stall_timeout,
        )
        logger.info("Opening %r", self)
        try:
            async with self._session.get(
                endpoint.url, timeout=timeout, headers={"Icy-MetaData": "0"}
            ) as response:
                response.raise_for_status()
                codec = codec_for_stream(response.headers.get("Content-Type", ""), endpoint.url)
                if codec is None:
                    self._emit(StreamFailed(f"Unsupported content type: {response.content_type}"))
                    return
                logger.debug("%r delivers %s", self, codec)
                await self._pump(response, codec)
        except TimeoutError:
            logger.warning("%r stalled: no data for %.0f s", self, endpoint.stall_timeout)
            self._emit(Stalled())
        except ClientError as err:
            logger.warning("%r connection error: %s", self, err)
            self._emit(StreamFailed(f"Connection error: {err}"))
        except av.error.FFmpegError as err:
            logger.warning("%r decoder error: %s", self, err)
            self._emit(StreamFailed(f"Decoder error: {err}"))
        except OSError as err:
            logger.warning("%r I/O error: %s", self, err)
            self._emit(StreamFailed(f"I/O error: {err}"))
        except Exception as err:
            logger.exception("Unexpected error in %r", self)
            self._emit(StreamFailed(f"Unexpected error: {err}"))

    async def _pump(self, response: ClientResponse, codec: str) -> None:
        decoder = cast("av.AudioCodecContext", av.AudioCodecContext.create(codec, "r"))
        while True:
            await self._resume_event.wait()
            chunk = await response.content.read(self._endpoint.chunk_size)
            if not chunk:
                logger.warning("%r ended", self)
                self._emit(StreamFailed("Stream ended"))
                return
            with Capture() as logs:
                frames = [
                    frame for packet in decoder.parse(chunk) for frame in decoder.decode(packet)
                ]
            for log in logs:
                logger.debug("Decoder log from av: %s", log)
            for frame in frames:
                self._write_frame(frame)
            self._check_ready()

    def _write_frame(self, frame: av.AudioFrame) -> None:
        channels = 1 if len(frame.layout.channels) == 1 else 2
        pcm_format = PCMFormat(sample_rate=frame.sample_rate, channels=channels)
        if self._resampler is None or pcm_format != self._pcm_format:
            self._resampler = av.AudioResampler(
                format="s16",
                layout="mono" if channels == 1 else "stereo",
                rate=frame.sample_rate,
            )
            self._pcm_format = pcm_format
            self._output.set_format(pcm_format)
        for out_frame in self._resampler.resample(frame):
            expected = pcm_format.frame_size * out_frame.samples
            self._output.submit(bytes(out_frame.planes[0])[:expected])

    def _check_ready(self) -> None:
        if self._ready or self._pcm_format is None:
            return
        if self._output.buffered_seconds < self._endpoint.preferred_buffer_seconds:
            return
        self._ready = True
        if not self._paused:
            self._output.start()
        logger.info("%r is ready to play", self)
        self._emit(ReadyToPlay())


class StreamSource:
    """Factory for stream handles sharing one HTTP session."""

    def __init__(
        self,
        *,
        session: ClientSession | None = None,
        output_factory: OutputFactory | None = None,
    ) -> None:
        """
        Create a stream source.

        Args:
            session: HTTP session to use; one is created on first open() if omitted.
            output_factory: Builds the PCM output for each handle, defaults to
                a sounddevice AudioOutput.
        """
        self._session = session
        self._owns_session = session is None
        self._output_factory = output_factory or _default_output_factory
        self._handles: set[StreamHandle] = set()
        self._closed = False

    def open(self, endpoint: StreamEndpoint, on_event: StreamEventCallback) -> StreamHandle:
        """Start streaming ``endpoint``; must be called from the event loop."""
        if self._closed:
            raise RuntimeError("Stream source is closed")
        loop = asyncio.get_running_loop()
        if self._session is None:
            self._session = ClientSession()
        handle = StreamHandle(
            endpoint,
            self._session,
            loop=loop,
            output_factory=self._output_factory,
            on_event=on_event,
        )
        self._handles.add(handle)
        handle._task.add_done_callback(lambda _: self._handles.discard(handle))  # noqa: SLF001
        return handle

    async def close(self) -> None:
        """Close all open handles and release the HTTP session."""
        self._closed = True
        handles = list(self._handles)
        for handle in handles:
            handle.close()
        for handle in handles:
            await handle.wait_closed()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
