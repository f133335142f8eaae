"""Sleep timer that pauses playback after a countdown."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Final, Protocol

from aioradio.callbacks import CallbackList

logger = logging.getLogger(__name__)

SLEEP_TIMER_PRESETS: Final[tuple[int, ...]] = (5, 15, 30, 45, 60, 90)
"""Durations in minutes offered to the user."""

TICK_SECONDS: Final[float] = 1.0


class Pausable(Protocol):
    """Anything the timer can pause, normally the PlaybackController."""

    def pause(self) -> None:
        """Pause playback."""


@dataclass(frozen=True, slots=True)
class SleepTimerState:
    """Snapshot of the timer."""

    active: bool = False
    remaining_seconds: int = 0


StateCallback = Callable[[SleepTimerState], Awaitable[None] | None]


def format_remaining(seconds: int) -> str:
    """Format a duration as MM:SS."""
    minutes, seconds = divmod(max(seconds, 0), 60)
    return f"{minutes:02d}:{seconds:02d}"


class SleepTimer:
    """
    Countdown that pauses the player once it reaches zero.

    The timer ticks once per second on the event loop. Starting a new
    countdown replaces the running one.
    """

    def __init__(self, player: Pausable, *, tick_seconds: float = TICK_SECONDS) -> None:
        """
        Initialize an inactive timer.

        Args:
            player: Paused when the countdown expires.
            tick_seconds: Wall-clock length of one countdown second.
        """
        self._player = player
        self._tick_seconds = tick_seconds
        self._active = False
        self._remaining = 0
        self._generation = 0
        self._timer: asyncio.TimerHandle | None = None
        self._listeners: CallbackList[SleepTimerState] = CallbackList("sleep timer")

    @property
    def active(self) -> bool:
        """Return True while counting down."""
        return self._active

    @property
    def remaining_seconds(self) -> int:
        """Return the seconds left before playback is paused."""
        return self._remaining

    @property
    def state(self) -> SleepTimerState:
        """Return a snapshot of the timer."""
        return SleepTimerState(active=self._active, remaining_seconds=self._remaining)

    def add_listener(self, callback: StateCallback) -> Callable[[], None]:
        """Register a callback invoked on every tick, start and stop."""
        return self._listeners.add(callback)

    def format_remaining(self) -> str:
        """Return the remaining time as MM:SS."""
        return format_remaining(self._remaining)

    def start(self, minutes: int) -> None:
        """Count down ``minutes`` and then pause the player."""
        if minutes <= 0:
            raise ValueError(f"minutes must be positive, got {minutes}")
        self._cancel()
        self._active = True
        self._remaining = minutes * 60
        logger.info("Sleep timer set to %d min", minutes)
        self._schedule_tick()
        self._listeners.notify(self.state)

    def stop(self) -> None:
        """Cancel the countdown."""
        was_active = self._active
        self._cancel()
        self._active = False
        self._remaining = 0
        if was_active:
            logger.info("Sleep timer stopped")
            self._listeners.notify(self.state)

    def tick(self) -> None:
        """Advance the countdown by one second."""
        if not self._active:
            return
        self._remaining = max(self._remaining - 1, 0)
        if self._remaining > 0:
            self._schedule_tick()
            self._listeners.notify(self.state)
            return

        self._cancel()
        self._active = False
        logger.info("Sleep timer expired, pausing playback")
        self._player.pause()
        self._listeners.notify(self.state)

    async def close(self) -> None:
        """Stop the timer and drop its listeners."""
        self.stop()
        await self._listeners.aclose()

    def _schedule_tick(self) -> None:
        self._cancel()
        generation = self._generation
        self._timer = asyncio.get_running_loop().call_later(
            self._tick_seconds, self._on_timer, generation
        )

    def _on_timer(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self.tick()

    def _cancel(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
