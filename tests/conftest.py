"""Shared fixtures for the aioradio tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from aioradio.config import StreamEndpoint
from aioradio.models.types import RetryBudget
from aioradio.player.controller import PlaybackController

from .fakes import FakeSource


@pytest.fixture
def endpoint() -> StreamEndpoint:
    """Return a stream endpoint for tests."""
    return StreamEndpoint(url="https://radio.example.com/live.mp3")


@pytest.fixture
def source() -> FakeSource:
    """Return a fake stream source."""
    return FakeSource()


@pytest.fixture
def audio_session() -> MagicMock:
    """Return a mock host audio session."""
    return MagicMock()


@pytest.fixture
def controller(
    endpoint: StreamEndpoint, source: FakeSource, audio_session: MagicMock
) -> PlaybackController:
    """Return a controller with a short backoff so recoveries fire quickly."""
    return PlaybackController(
        endpoint,
        source,  # type: ignore[arg-type]
        session=audio_session,
        retry_budget=RetryBudget(max_attempts=3, backoff_seconds=0.01),
    )
