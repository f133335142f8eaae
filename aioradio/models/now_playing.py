"""Now playing payloads served by the station metadata endpoint.

The endpoint returns an AzuraCast style document. Only ``now_playing.song.title``
and ``now_playing.song.artist`` are required; every other field is optional and
unknown keys are ignored so that server-side additions never break decoding.
"""

from __future__ import annotations

from dataclasses import dataclass

import orjson
from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin


@dataclass
class Song(DataClassORJSONMixin):
    """Song object inside the now_playing block."""

    title: str
    artist: str
    art: str | None = None
    """URL of the cover art, if the station provides one."""
    text: str | None = None
    """Preformatted "artist - title" string."""


@dataclass
class NowPlaying(DataClassORJSONMixin):
    """The track currently on air."""

    song: Song
    elapsed: int = 0
    """Seconds since the track started."""
    duration: int = 0
    """Track length in seconds, 0 if unknown."""
    remaining: int | None = None
    played_at: int | None = None
    """Unix timestamp of the track start."""
    playlist: str | None = None


@dataclass
class Station(DataClassORJSONMixin):
    """Station description."""

    name: str
    description: str | None = None
    listen_url: str | None = None


@dataclass
class Listeners(DataClassORJSONMixin):
    """Listener counters."""

    total: int | None = None
    unique: int | None = None
    current: int | None = None


@dataclass
class NowPlayingResponse(DataClassORJSONMixin):
    """Top level document of the metadata endpoint."""

    now_playing: NowPlaying
    station: Station | None = None
    listeners: Listeners | None = None
    is_online: bool | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass(frozen=True, slots=True)
class TrackMetadata:
    """Track information published by the poller."""

    title: str
    artist: str
    artwork_url: str | None = None
    elapsed_seconds: int = 0
    duration_seconds: int = 0
    playlist: str | None = None
    played_at: int | None = None
    listeners: int | None = None
    is_online: bool | None = None
    station_name: str | None = None

    @classmethod
    def from_response(cls, response: NowPlayingResponse) -> TrackMetadata:
        """Flatten a decoded endpoint response."""
        now_playing = response.now_playing
        song = now_playing.song
        return cls(
            title=song.title,
            artist=song.artist,
            artwork_url=song.art or None,
            elapsed_seconds=now_playing.elapsed,
            duration_seconds=now_playing.duration,
            playlist=now_playing.playlist,
            played_at=now_playing.played_at,
            listeners=response.listeners.current if response.listeners else None,
            is_online=response.is_online,
            station_name=response.station.name if response.station else None,
        )


def parse_track_metadata(data: bytes | str) -> TrackMetadata:
    """
    Decode a metadata endpoint body.

    Args:
        data: Raw JSON body.

    Returns:
        The flattened TrackMetadata.

    Raises:
        orjson.JSONDecodeError: If the body is not JSON.
        ValueError: If the body is not an object or title/artist are not strings.
        mashumaro.exceptions.MissingField: If a required field is absent.
        mashumaro.exceptions.InvalidFieldValue: If a field has the wrong type.
    """
    payload = orjson.loads(data)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    now_playing = payload.get("now_playing")
    song = now_playing.get("song") if isinstance(now_playing, dict) else None
    if isinstance(song, dict):
        # mashumaro passes str fields through unchecked
        for key in ("title", "artist"):
            if key in song and not isinstance(song[key], str):
                raise ValueError(f"now_playing.song.{key} must be a string")
    return TrackMetadata.from_response(NowPlayingResponse.from_dict(payload))
