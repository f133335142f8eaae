"""Station configuration for aioradio."""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro.mixins.orjson import DataClassORJSONMixin

DEFAULT_STATION_NAME = "Kardasti Radio"
DEFAULT_STREAM_URL = "https://stream.server5.de/listen/farsi/kardasti-radio.mp3"
DEFAULT_METADATA_URL = "https://stream.server5.de/api/nowplaying/farsi"
DEFAULT_ARTIST = "Live Stream"


@dataclass(frozen=True, slots=True)
class StreamEndpoint:
    """Immutable description of the audio stream to play."""

    url: str
    preferred_buffer_seconds: float = 4.0
    """Audio to buffer before reporting the stream ready."""
    connect_timeout: float = 10.0
    """Seconds allowed to establish the connection."""
    stall_timeout: float = 10.0
    """Seconds without received bytes after which the stream counts as stalled."""
    chunk_size: int = 8192
    """Bytes read from the socket per iteration."""

    def __post_init__(self) -> None:
        """Validate the endpoint settings."""
        if not self.url.startswith(("http://", "https://")):
            raise ValueError(f"url must be http(s), got {self.url!r}")
        if self.preferred_buffer_seconds < 0:
            raise ValueError("preferred_buffer_seconds must not be negative")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.stall_timeout <= 0:
            raise ValueError("stall_timeout must be positive")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")


@dataclass
class StationConfig(DataClassORJSONMixin):
    """Everything the client needs to know about one station."""

    name: str = DEFAULT_STATION_NAME
    """Display title used while no metadata is available."""
    stream_url: str = DEFAULT_STREAM_URL
    metadata_url: str = DEFAULT_METADATA_URL
    default_artist: str = DEFAULT_ARTIST
    """Display artist used while no metadata is available."""
    artwork_url: str | None = None
    """Station logo, used when the current track has no art."""
    poll_interval: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 2.0
    preferred_buffer_seconds: float = 4.0
    connect_timeout: float = 10.0
    stall_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Validate the configuration."""
        if not self.name:
            raise ValueError("name must not be empty")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff must not be negative")
        if not self.metadata_url.startswith(("http://", "https://")):
            raise ValueError(f"metadata_url must be http(s), got {self.metadata_url!r}")
        # stream settings are validated by StreamEndpoint
        self.endpoint()

    def endpoint(self) -> StreamEndpoint:
        """Build the stream endpoint described by this configuration."""
        return StreamEndpoint(
            url=self.stream_url,
            preferred_buffer_seconds=self.preferred_buffer_seconds,
            connect_timeout=self.connect_timeout,
            stall_timeout=self.stall_timeout,
        )
