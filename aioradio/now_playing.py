"""Periodic now playing metadata poller."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from types import TracebackType
from typing import Self

from aiohttp import ClientError, ClientSession, ClientTimeout
from mashumaro.exceptions import InvalidFieldValue, MissingField
from orjson import JSONDecodeError

from aioradio.callbacks import CallbackList
from aioradio.models.now_playing import TrackMetadata, parse_track_metadata

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0  # seconds
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds

MetadataCallback = Callable[[TrackMetadata], Awaitable[None] | None]


class NowPlayingPoller:
    """
    Poll the station metadata endpoint for the track on air.

    start() fetches immediately and then every ``interval`` seconds. A failed
    fetch keeps the last good metadata, records the error in ``last_error``
    and waits for the next tick; failures never stop the polling.

    Example:
        poller = NowPlayingPoller(config.metadata_url)
        poller.add_listener(lambda track: print(f"Now playing: {track.title}"))
        poller.start()
    """

    def __init__(
        self,
        url: str,
        *,
        session: ClientSession | None = None,
        interval: float = DEFAULT_POLL_INTERVAL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """
        Initialize the poller.

        Args:
            url: Metadata endpoint URL.
            session: HTTP session to use; one is created on first fetch if omitted.
            interval: Seconds between polls.
            request_timeout: Total timeout of one fetch in seconds.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._url = url
        self._session = session
        self._owns_session = session is None
        self._interval = interval
        self._timeout = ClientTimeout(total=request_timeout)
        self._task: asyncio.Task[None] | None = None
        self._metadata: TrackMetadata | None = None
        self._last_error: Exception | None = None
        self._listeners: CallbackList[TrackMetadata] = CallbackList("now playing")

    @property
    def url(self) -> str:
        """Return the metadata endpoint URL."""
        return self._url

    @property
    def interval(self) -> float:
        """Return the poll interval in seconds."""
        return self._interval

    @property
    def running(self) -> bool:
        """Return True while polling is active."""
        return self._task is not None and not self._task.done()

    @property
    def metadata(self) -> TrackMetadata | None:
        """Return the last successfully fetched metadata."""
        return self._metadata

    @property
    def last_error(self) -> Exception | None:
        """Return the error of the most recent fetch, None if it succeeded."""
        return self._last_error

    def add_listener(self, callback: MetadataCallback) -> Callable[[], None]:
        """Register a callback invoked on each successful fetch; returns an unsubscribe function."""
        return self._listeners.add(callback)

    def start(self) -> None:
        """Start polling; does nothing if already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._poll_loop(), name="aioradio-now-playing"
        )
        logger.info("Polling %s every %.0f s", self._url, self._interval)

    def stop(self) -> None:
        """Stop polling. A fetch in flight is cancelled and not published."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Stopped polling %s", self._url)

    async def fetch_now(self) -> TrackMetadata | None:
        """
        Fetch the metadata once.

        Returns:
            The fresh metadata, or None if the fetch failed.
        """
        if self._session is None:
            self._session = ClientSession()
        try:
            async with self._session.get(self._url, timeout=self._timeout) as response:
                response.raise_for_status()
                body = await response.read()
            metadata = parse_track_metadata(body)
        except (ClientError, TimeoutError) as err:
            self._record_error(err, "request failed")
            return None
        except (JSONDecodeError, MissingField, InvalidFieldValue, TypeError, ValueError) as err:
            self._record_error(err, "invalid payload")
            return None

        self._last_error = None
        if metadata != self._metadata:
            logger.debug("Now playing: %s - %s", metadata.artist, metadata.title)
        self._metadata = metadata
        self._listeners.notify(metadata)
        return metadata

    async def close(self) -> None:
        """Stop polling and release the HTTP session if it is owned."""
        task = self._task
        self.stop()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task
        await self._listeners.aclose()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.fetch_now()
            except Exception as err:
                self._last_error = err
                logger.exception("Unexpected error polling %s", self._url)
            await asyncio.sleep(self._interval)

    def _record_error(self, err: Exception, what: str) -> None:
        self._last_error = err
        logger.warning("Now playing %s for %s: %s", what, self._url, err)

    async def __aenter__(self) -> Self:
        """Start polling when entering the async context manager."""
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Stop polling when leaving the async context manager."""
        await self.close()
