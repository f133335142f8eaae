"""Now playing surface for OS-level media controls."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from aioradio.callbacks import CallbackList
from aioradio.config import DEFAULT_ARTIST
from aioradio.models.types import PlaybackState, TransportCommand

if TYPE_CHECKING:
    from aioradio.models.now_playing import TrackMetadata
    from aioradio.now_playing import NowPlayingPoller
    from aioradio.player.controller import PlaybackController

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NowPlayingInfo:
    """What the host shows on lock screens, widgets and remote controls."""

    title: str
    artist: str
    artwork_url: str | None = None
    elapsed_seconds: int = 0
    duration_seconds: int = 0
    is_live: bool = True
    """Always True, the stream cannot be seeked."""
    playback_rate: float = 0.0
    """1.0 while playing, 0.0 otherwise."""
    default_playback_rate: float = 1.0


InfoCallback = Callable[[NowPlayingInfo], Awaitable[None] | None]


class TransportInfoPublisher:
    """
    Merge playback state and track metadata into a NowPlayingInfo.

    The info is recomputed on every controller state change and every poller
    publish. Transport commands from the host are forwarded to the controller
    unchanged; the publisher itself holds no playback state.
    """

    def __init__(
        self,
        controller: PlaybackController,
        poller: NowPlayingPoller,
        *,
        station_name: str,
        default_artist: str = DEFAULT_ARTIST,
        station_artwork_url: str | None = None,
    ) -> None:
        """
        Attach to a controller and a poller.

        Args:
            controller: Receives forwarded commands and provides the play state.
            poller: Provides the track metadata.
            station_name: Title shown while no metadata is available.
            default_artist: Artist shown while no metadata is available.
            station_artwork_url: Artwork used when the track has none.
        """
        self._controller = controller
        self._poller = poller
        self._station_name = station_name
        self._default_artist = default_artist
        self._station_artwork_url = station_artwork_url
        self._listeners: CallbackList[NowPlayingInfo] = CallbackList("now playing info")
        self._info = self._compute(controller.state, poller.metadata)
        self._unsubscribers = [
            controller.add_state_listener(self._on_state_changed),
            poller.add_listener(self._on_metadata),
        ]

    @property
    def info(self) -> NowPlayingInfo:
        """Return the current now playing info."""
        return self._info

    @property
    def display_title(self) -> str:
        """Return the title to display."""
        return self._info.title

    @property
    def display_artist(self) -> str:
        """Return the artist to display."""
        return self._info.artist

    @property
    def is_live(self) -> bool:
        """Return True, radio streams are always live."""
        return self._info.is_live

    @property
    def playback_rate(self) -> float:
        """Return 1.0 while playing, 0.0 otherwise."""
        return self._info.playback_rate

    def add_listener(self, callback: InfoCallback) -> Callable[[], None]:
        """Register a callback invoked whenever the info is recomputed."""
        return self._listeners.add(callback)

    def handle_command(self, command: TransportCommand) -> None:
        """Forward a transport command to the playback controller."""
        logger.debug("Transport command: %s", command.value)
        match command:
            case TransportCommand.PLAY:
                self._controller.play()
            case TransportCommand.PAUSE:
                self._controller.pause()
            case TransportCommand.TOGGLE_PLAY_PAUSE:
                self._controller.toggle_play_pause()

    def play(self) -> None:
        """Forward a play command."""
        self.handle_command(TransportCommand.PLAY)

    def pause(self) -> None:
        """Forward a pause command."""
        self.handle_command(TransportCommand.PAUSE)

    def toggle_play_pause(self) -> None:
        """Forward a toggle command."""
        self.handle_command(TransportCommand.TOGGLE_PLAY_PAUSE)

    def detach(self) -> None:
        """Stop following the controller and the poller."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _on_state_changed(self, state: PlaybackState) -> None:
        self._publish(self._compute(state, self._poller.metadata))

    def _on_metadata(self, metadata: TrackMetadata) -> None:
        self._publish(self._compute(self._controller.state, metadata))

    def _compute(self, state: PlaybackState, metadata: TrackMetadata | None) -> NowPlayingInfo:
        rate = 1.0 if state is PlaybackState.PLAYING else 0.0
        if metadata is None:
            return NowPlayingInfo(
                title=self._station_name,
                artist=self._default_artist,
                artwork_url=self._station_artwork_url,
                playback_rate=rate,
            )
        return NowPlayingInfo(
            title=metadata.title or self._station_name,
            artist=metadata.artist or self._default_artist,
            artwork_url=metadata.artwork_url or self._station_artwork_url,
            elapsed_seconds=metadata.elapsed_seconds,
            duration_seconds=metadata.duration_seconds,
            playback_rate=rate,
        )

    def _publish(self, info: NowPlayingInfo) -> None:
        self._info = info
        self._listeners.notify(info)
