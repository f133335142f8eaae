"""Playback controller with automatic stream recovery."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from aioradio.callbacks import CallbackList
from aioradio.models.types import (
    InterruptionType,
    PlaybackState,
    ReadyToPlay,
    RetryBudget,
    RouteChangeReason,
    Stalled,
    StreamEvent,
    StreamFailed,
)

from .session import AudioSession, LoggingAudioSession

if TYPE_CHECKING:
    from aioradio.config import StreamEndpoint

    from .source import StreamHandle, StreamSource

logger = logging.getLogger(__name__)

StateCallback = Callable[[PlaybackState], Awaitable[None] | None]


class PlaybackController:
    """
    Plays one stream endpoint and keeps it playing.

    All methods must be called from the event loop; none of them blocks.
    Stream failures and stalls while playing or buffering are retried after a
    fixed backoff until the retry budget is used up, at which point the
    controller enters FAILED and waits for an explicit play().

    Example:
        controller = PlaybackController(config.endpoint(), StreamSource())
        controller.add_state_listener(lambda state: print(state.value))
        controller.play()
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        source: StreamSource,
        *,
        session: AudioSession | None = None,
        retry_budget: RetryBudget | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            endpoint: The stream to play.
            source: Opens stream handles for the endpoint.
            session: Host audio session to activate before playing.
            retry_budget: Retry limits, defaults to 3 attempts with 2 s backoff.
        """
        self._endpoint = endpoint
        self._source = source
        self._session: AudioSession = session or LoggingAudioSession()
        self._budget = retry_budget or RetryBudget()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._state = PlaybackState.IDLE
        self._handle: StreamHandle | None = None
        self._generation = 0
        self._retry_timer: asyncio.TimerHandle | None = None
        self._resume_after_interruption = False
        self._last_failure: str | None = None
        self._listeners: CallbackList[PlaybackState] = CallbackList("playback state")
        self._closed = False

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    @property
    def state(self) -> PlaybackState:
        """Return the current playback state."""
        return self._state

    @property
    def is_playing(self) -> bool:
        """Return True while audio is playing."""
        return self._state is PlaybackState.PLAYING

    @property
    def endpoint(self) -> StreamEndpoint:
        """Return the endpoint being played."""
        return self._endpoint

    @property
    def retry_budget(self) -> RetryBudget:
        """Return the retry bookkeeping."""
        return self._budget

    @property
    def recovery_pending(self) -> bool:
        """Return True while a stream recreation is scheduled."""
        return self._retry_timer is not None

    @property
    def resume_after_interruption(self) -> bool:
        """Return True if an interruption paused playback that should come back."""
        return self._resume_after_interruption

    @property
    def last_failure(self) -> str | None:
        """Return the reason of the most recent stream problem, if any."""
        return self._last_failure

    def add_state_listener(self, callback: StateCallback) -> Callable[[], None]:
        """Register a callback invoked on every state change; returns an unsubscribe function."""
        return self._listeners.add(callback)

    def play(self) -> None:
        """Start or resume playback, resetting the retry budget."""
        if self._closed:
            raise RuntimeError("Playback controller is closed")
        if self._state is PlaybackState.PLAYING:
            return
        retry_pending = self._cancel_retry()
        self._budget.reset()
        self._session.activate()

        if self._state is PlaybackState.BUFFERING:
            if retry_pending:
                logger.info("Retrying stream immediately")
                self._recreate_handle()
            return

        self._set_state(PlaybackState.BUFFERING)
        if self._handle is None:
            self._open_handle()
            return
        self._handle.resume()
        if self._handle.ready:
            self._set_state(PlaybackState.PLAYING)

    def pause(self) -> None:
        """Pause playback on user request. Calling it twice is the same as once."""
        self._resume_after_interruption = False
        self._pause("user request")

    def toggle_play_pause(self) -> None:
        """Pause if playing or buffering, otherwise play."""
        if self._state.is_active:
            self.pause()
        else:
            self.play()

    def handle_interruption(self, kind: InterruptionType, *, should_resume: bool = False) -> None:
        """
        React to another application claiming or releasing the audio output.

        Args:
            kind: Whether the interruption began or ended.
            should_resume: Set by the host on ENDED when playback may continue.
        """
        if kind is InterruptionType.BEGAN:
            if self._pause("interruption"):
                self._resume_after_interruption = True
            return

        resume = should_resume and self._resume_after_interruption
        self._resume_after_interruption = False
        if resume:
            logger.info("Interruption ended, resuming playback")
            self.play()

    def handle_route_change(self, reason: RouteChangeReason) -> None:
        """Pause when the output device disappears; never resume on its own."""
        if reason is RouteChangeReason.OLD_DEVICE_UNAVAILABLE:
            self._pause("output device removed")
        else:
            logger.debug("Ignoring route change: %s", reason.value)

    def handle_foreground_transition(self) -> None:
        """Re-assert playback after the host application came to the foreground."""
        self._reassert_playback("foreground")

    def handle_background_transition(self) -> None:
        """Re-assert playback after the host application moved to the background."""
        self._reassert_playback("background")

    async def close(self) -> None:
        """Stop playback and release the stream."""
        if self._closed:
            return
        self._closed = True
        self._cancel_retry()
        self._close_handle()
        self._resume_after_interruption = False
        self._set_state(PlaybackState.IDLE)
        self._session.deactivate()
        await self._listeners.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _pause(self, reason: str) -> bool:
        if not self._state.is_active:
            return False
        if self._cancel_retry():
            # the handle awaiting recreation already failed, the next play() opens a fresh one
            self._close_handle()
        elif self._handle is not None:
            self._handle.pause()
        logger.info("Pausing playback (%s)", reason)
        self._set_state(PlaybackState.PAUSED)
        return True

    def _reassert_playback(self, reason: str) -> None:
        if self._state is not PlaybackState.PLAYING or self._handle is None:
            return
        logger.debug("Re-asserting playback after %s transition", reason)
        self._session.activate()
        self._handle.resume()

    def _on_stream_event(self, handle: StreamHandle, event: StreamEvent) -> None:
        if handle is not self._handle:
            logger.debug("Ignoring %s from superseded %r", type(event).__name__, handle)
            return

        match event:
            case ReadyToPlay():
                self._handle_ready()
            case StreamFailed(reason=reason):
                self._handle_failure(reason)
            case Stalled():
                self._handle_failure("stalled")
            case _:
                logger.debug("Unhandled stream event: %s", type(event).__name__)

    def _handle_ready(self) -> None:
        if self._state is not PlaybackState.BUFFERING:
            return
        self._budget.reset()
        self._last_failure = None
        self._set_state(PlaybackState.PLAYING)

    def _handle_failure(self, reason: str) -> None:
        self._last_failure = reason
        if not self._state.is_active:
            logger.info("Discarding broken stream while %s: %s", self._state.value, reason)
            self._close_handle()
            return
        if self._retry_timer is not None:
            logger.debug("Recovery already scheduled, ignoring: %s", reason)
            return

        attempt = self._budget.consume()
        if self._budget.exhausted:
            logger.error("Stream failed %d times, giving up: %s", attempt, reason)
            self._close_handle()
            self._set_state(PlaybackState.FAILED)
            return

        logger.warning(
            "Stream problem (%s), reconnecting in %.1f s (attempt %d/%d)",
            reason,
            self._budget.backoff_seconds,
            attempt,
            self._budget.max_attempts,
        )
        self._schedule_recreate()
        self._set_state(PlaybackState.BUFFERING)

    def _schedule_recreate(self) -> None:
        self._cancel_retry()
        generation = self._generation
        self._retry_timer = self._get_loop().call_later(
            self._budget.backoff_seconds, self._fire_recreate, generation
        )

    def _fire_recreate(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Skipping superseded recovery #%d", generation)
            return
        self._retry_timer = None
        if self._state is not PlaybackState.BUFFERING:
            return
        self._recreate_handle()

    def _cancel_retry(self) -> bool:
        """Invalidate any scheduled recreation; return True if one was pending."""
        self._generation += 1
        if self._retry_timer is None:
            return False
        self._retry_timer.cancel()
        self._retry_timer = None
        return True

    def _open_handle(self) -> None:
        self._handle = self._source.open(self._endpoint, self._on_stream_event)

    def _close_handle(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        handle.close()

    def _recreate_handle(self) -> None:
        self._close_handle()
        self._open_handle()

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.info("Playback state %s -> %s", previous.value, state.value)
        self._listeners.notify(state)
