"""Listener bookkeeping shared by the aioradio components."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CallbackList(Generic[T]):
    """
    Fire-and-forget notification of registered callbacks.

    Plain callbacks run inline; callbacks returning a coroutine get it scheduled
    as a task so the notifying component never waits for its listeners.
    Exceptions raised by listeners are logged and never propagate.
    """

    def __init__(self, name: str) -> None:
        """Create an empty list; ``name`` is used in log messages."""
        self._name = name
        self._callbacks: list[Callable[[T], Awaitable[None] | None]] = []
        self._tasks: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        """Return the number of registered callbacks."""
        return len(self._callbacks)

    def add(self, callback: Callable[[T], Awaitable[None] | None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._callbacks.append(callback)

        def remove() -> None:
            with suppress(ValueError):
                self._callbacks.remove(callback)

        return remove

    def notify(self, payload: T) -> None:
        """Invoke every callback with ``payload``."""
        for callback in list(self._callbacks):
            try:
                result = callback(payload)
                if asyncio.iscoroutine(result):
                    task = asyncio.get_running_loop().create_task(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._task_done)
            except Exception:
                logger.exception("Error in %s callback %s", self._name, callback)

    async def aclose(self) -> None:
        """Drop all callbacks and cancel their pending tasks."""
        self._callbacks.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (err := task.exception()) is not None:
            logger.error("Error in %s callback", self._name, exc_info=err)
