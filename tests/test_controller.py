"""Tests for PlaybackController."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from aioradio.models.types import (
    InterruptionType,
    PlaybackState,
    ReadyToPlay,
    RetryBudget,
    RouteChangeReason,
    Stalled,
    StreamFailed,
)
from aioradio.player.controller import PlaybackController

from .fakes import FakeSource

BACKOFF_WAIT = 0.05


async def _start_playing(controller: PlaybackController, source: FakeSource) -> None:
    controller.play()
    source.current.ready = True
    source.current.emit(ReadyToPlay())


async def _fail_and_recover(controller: PlaybackController, source: FakeSource) -> None:
    source.current.emit(StreamFailed("boom"))
    await asyncio.sleep(BACKOFF_WAIT)


class TestPlaybackControllerInit:
    """Test controller construction."""

    def test_starts_idle(self, controller: PlaybackController) -> None:
        """Test that a new controller is idle with a fresh budget."""
        assert controller.state is PlaybackState.IDLE
        assert not controller.is_playing
        assert controller.retry_budget.attempt_count == 0
        assert not controller.recovery_pending

    def test_default_budget(self, endpoint, source: FakeSource) -> None:
        """Test that the default budget allows three attempts two seconds apart."""
        controller = PlaybackController(endpoint, source)  # type: ignore[arg-type]
        assert controller.retry_budget.max_attempts == 3
        assert controller.retry_budget.backoff_seconds == 2.0


class TestPlay:
    """Test starting playback."""

    @pytest.mark.asyncio
    async def test_play_opens_stream_and_buffers(
        self, controller: PlaybackController, source: FakeSource, audio_session: MagicMock
    ) -> None:
        """Test that play() activates the session and opens one handle."""
        controller.play()

        assert controller.state is PlaybackState.BUFFERING
        assert len(source.handles) == 1
        assert source.current.endpoint is controller.endpoint
        audio_session.activate.assert_called_once()

    @pytest.mark.asyncio
    async def test_ready_starts_playing(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that ReadyToPlay moves BUFFERING to PLAYING."""
        await _start_playing(controller, source)

        assert controller.state is PlaybackState.PLAYING
        assert controller.is_playing

    @pytest.mark.asyncio
    async def test_play_while_playing_is_noop(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that play() during playback keeps the current handle."""
        await _start_playing(controller, source)
        controller.play()

        assert len(source.handles) == 1
        assert controller.state is PlaybackState.PLAYING

    @pytest.mark.asyncio
    async def test_play_while_buffering_keeps_handle(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a second play() while the buffer fills opens nothing new."""
        controller.play()
        controller.play()

        assert len(source.handles) == 1
        assert controller.state is PlaybackState.BUFFERING

    @pytest.mark.asyncio
    async def test_play_after_close_raises(self, controller: PlaybackController) -> None:
        """Test that a closed controller refuses to play."""
        await controller.close()

        with pytest.raises(RuntimeError):
            controller.play()


class TestPause:
    """Test pausing and resuming."""

    @pytest.mark.asyncio
    async def test_pause_keeps_handle(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that pausing pauses the handle instead of closing it."""
        await _start_playing(controller, source)
        controller.pause()

        assert controller.state is PlaybackState.PAUSED
        assert source.current.paused
        assert not source.current.closed

    @pytest.mark.asyncio
    async def test_pause_is_idempotent(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that pausing twice has the same effect as pausing once."""
        states: list[PlaybackState] = []
        await _start_playing(controller, source)
        controller.add_state_listener(states.append)

        controller.pause()
        controller.pause()

        assert states == [PlaybackState.PAUSED]
        assert source.current.pause_calls == 1

    @pytest.mark.asyncio
    async def test_pause_when_idle_does_nothing(self, controller: PlaybackController) -> None:
        """Test that pausing before playing leaves the controller idle."""
        controller.pause()

        assert controller.state is PlaybackState.IDLE

    @pytest.mark.asyncio
    async def test_resume_with_primed_handle_plays_immediately(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that play() after pause reuses the handle and its buffer."""
        await _start_playing(controller, source)
        controller.pause()
        controller.play()

        assert controller.state is PlaybackState.PLAYING
        assert len(source.handles) == 1
        assert source.current.resume_calls == 1

    @pytest.mark.asyncio
    async def test_toggle(self, controller: PlaybackController, source: FakeSource) -> None:
        """Test that toggling alternates between pausing and playing."""
        controller.toggle_play_pause()
        assert controller.state is PlaybackState.BUFFERING

        controller.toggle_play_pause()
        assert controller.state is PlaybackState.PAUSED

        source.current.ready = True
        controller.toggle_play_pause()
        assert controller.state is PlaybackState.PLAYING


class TestRecovery:
    """Test automatic stream recreation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [1, 2])
    async def test_failures_below_limit_recreate(
        self, controller: PlaybackController, source: FakeSource, failures: int
    ) -> None:
        """Test that each failure below the limit recreates the stream once."""
        await _start_playing(controller, source)

        for _ in range(failures):
            await _fail_and_recover(controller, source)

        assert len(source.handles) == failures + 1
        assert controller.state is PlaybackState.BUFFERING
        assert all(handle.closed for handle in source.handles[:-1])
        assert not source.current.closed

    @pytest.mark.asyncio
    async def test_failure_waits_for_backoff(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that the replacement stream is opened only after the backoff."""
        await _start_playing(controller, source)
        source.current.emit(StreamFailed("boom"))

        assert controller.state is PlaybackState.BUFFERING
        assert controller.recovery_pending
        assert len(source.handles) == 1

        await asyncio.sleep(BACKOFF_WAIT)

        assert not controller.recovery_pending
        assert len(source.handles) == 2

    @pytest.mark.asyncio
    async def test_exhausted_budget_fails(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that reaching the retry limit ends in FAILED without another stream."""
        await _start_playing(controller, source)
        for _ in range(2):
            await _fail_and_recover(controller, source)

        source.current.emit(StreamFailed("still broken"))
        await asyncio.sleep(BACKOFF_WAIT)

        assert controller.state is PlaybackState.FAILED
        assert controller.last_failure == "still broken"
        assert len(source.handles) == 3
        assert source.current.closed
        assert not controller.recovery_pending

    @pytest.mark.asyncio
    async def test_stall_counts_as_failure(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a stall consumes an attempt and recreates the stream."""
        await _start_playing(controller, source)
        source.current.emit(Stalled())
        await asyncio.sleep(BACKOFF_WAIT)

        assert controller.retry_budget.attempt_count == 1
        assert controller.last_failure == "stalled"
        assert len(source.handles) == 2

    @pytest.mark.asyncio
    async def test_play_after_failed_resets_budget(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that an explicit play() from FAILED starts over with a full budget."""
        controller.play()
        for _ in range(3):
            await _fail_and_recover(controller, source)
        assert controller.state is PlaybackState.FAILED

        controller.play()

        assert controller.state is PlaybackState.BUFFERING
        assert controller.retry_budget.attempt_count == 0
        assert len(source.handles) == 4

    @pytest.mark.asyncio
    async def test_ready_resets_budget(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a successful recovery gives back all attempts."""
        await _start_playing(controller, source)
        await _fail_and_recover(controller, source)
        assert controller.retry_budget.attempt_count == 1

        source.current.emit(ReadyToPlay())

        assert controller.state is PlaybackState.PLAYING
        assert controller.retry_budget.attempt_count == 0
        assert controller.last_failure is None

    @pytest.mark.asyncio
    async def test_duplicate_failure_is_ignored(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a second failure while a recreation is pending costs nothing."""
        await _start_playing(controller, source)
        source.current.emit(StreamFailed("boom"))
        source.current.emit(Stalled())
        await asyncio.sleep(BACKOFF_WAIT)

        assert controller.retry_budget.attempt_count == 1
        assert len(source.handles) == 2

    @pytest.mark.asyncio
    async def test_events_from_replaced_handle_are_ignored(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a superseded handle can no longer change the state."""
        await _start_playing(controller, source)
        old_handle = source.current
        await _fail_and_recover(controller, source)

        old_handle.emit(ReadyToPlay())
        old_handle.emit(StreamFailed("late"))

        assert controller.state is PlaybackState.BUFFERING
        assert controller.retry_budget.attempt_count == 1
        assert not controller.recovery_pending

    @pytest.mark.asyncio
    async def test_pause_cancels_pending_recreation(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that pausing during the backoff keeps the stream closed."""
        await _start_playing(controller, source)
        source.current.emit(StreamFailed("boom"))

        controller.pause()
        await asyncio.sleep(BACKOFF_WAIT)

        assert controller.state is PlaybackState.PAUSED
        assert not controller.recovery_pending
        assert len(source.handles) == 1
        assert source.current.closed

        controller.play()
        assert len(source.handles) == 2
        assert controller.state is PlaybackState.BUFFERING

    @pytest.mark.asyncio
    async def test_play_during_backoff_retries_immediately(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that play() skips the remaining backoff and resets the budget."""
        await _start_playing(controller, source)
        source.current.emit(StreamFailed("boom"))

        controller.play()

        assert len(source.handles) == 2
        assert not controller.recovery_pending
        assert controller.retry_budget.attempt_count == 0

        await asyncio.sleep(BACKOFF_WAIT)
        assert len(source.handles) == 2

    @pytest.mark.asyncio
    async def test_failure_while_paused_discards_handle(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a paused stream breaking down is dropped without a retry."""
        await _start_playing(controller, source)
        controller.pause()

        source.current.emit(StreamFailed("server went away"))
        await asyncio.sleep(BACKOFF_WAIT)

        assert controller.state is PlaybackState.PAUSED
        assert source.current.closed
        assert controller.retry_budget.attempt_count == 0

        controller.play()
        assert len(source.handles) == 2
        assert controller.state is PlaybackState.BUFFERING

    @pytest.mark.asyncio
    async def test_zero_attempts_fails_on_first_error(self, endpoint, source: FakeSource) -> None:
        """Test that a budget without attempts fails on the first problem."""
        controller = PlaybackController(
            endpoint,
            source,  # type: ignore[arg-type]
            session=MagicMock(),
            retry_budget=RetryBudget(max_attempts=0, backoff_seconds=0.01),
        )
        controller.play()
        source.current.emit(StreamFailed("boom"))

        assert controller.state is PlaybackState.FAILED
        assert len(source.handles) == 1


class TestInterruption:
    """Test audio session interruptions."""

    @pytest.mark.asyncio
    async def test_interruption_pauses_and_resumes(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that an interruption pauses and a resumable end plays again."""
        await _start_playing(controller, source)

        controller.handle_interruption(InterruptionType.BEGAN)
        assert controller.state is PlaybackState.PAUSED
        assert controller.resume_after_interruption

        controller.handle_interruption(InterruptionType.ENDED, should_resume=True)
        assert controller.state is PlaybackState.PLAYING
        assert not controller.resume_after_interruption
        assert len(source.handles) == 1

    @pytest.mark.asyncio
    async def test_user_pause_during_interruption_wins(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that a user pause during the interruption prevents the resume."""
        await _start_playing(controller, source)
        controller.handle_interruption(InterruptionType.BEGAN)
        controller.pause()

        controller.handle_interruption(InterruptionType.ENDED, should_resume=True)

        assert controller.state is PlaybackState.PAUSED

    @pytest.mark.asyncio
    async def test_end_without_resume_hint_stays_paused(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that an ended interruption without the resume hint stays paused."""
        await _start_playing(controller, source)
        controller.handle_interruption(InterruptionType.BEGAN)

        controller.handle_interruption(InterruptionType.ENDED, should_resume=False)

        assert controller.state is PlaybackState.PAUSED
        assert not controller.resume_after_interruption

    @pytest.mark.asyncio
    async def test_interruption_while_paused_does_not_resume(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that playback paused by the user is not resumed after an interruption."""
        await _start_playing(controller, source)
        controller.pause()

        controller.handle_interruption(InterruptionType.BEGAN)
        controller.handle_interruption(InterruptionType.ENDED, should_resume=True)

        assert controller.state is PlaybackState.PAUSED

    @pytest.mark.asyncio
    async def test_interruption_while_buffering(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that an interruption during buffering resumes into buffering."""
        controller.play()
        controller.handle_interruption(InterruptionType.BEGAN)
        assert controller.state is PlaybackState.PAUSED

        controller.handle_interruption(InterruptionType.ENDED, should_resume=True)
        assert controller.state is PlaybackState.BUFFERING
        assert len(source.handles) == 1


class TestRouteChange:
    """Test output route changes."""

    @pytest.mark.asyncio
    async def test_device_removed_pauses(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that losing the output device pauses playback."""
        await _start_playing(controller, source)

        controller.handle_route_change(RouteChangeReason.OLD_DEVICE_UNAVAILABLE)

        assert controller.state is PlaybackState.PAUSED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reason",
        [
            RouteChangeReason.NEW_DEVICE_AVAILABLE,
            RouteChangeReason.CATEGORY_CHANGE,
            RouteChangeReason.OVERRIDE,
            RouteChangeReason.UNKNOWN,
        ],
    )
    async def test_other_reasons_change_nothing(
        self, controller: PlaybackController, source: FakeSource, reason: RouteChangeReason
    ) -> None:
        """Test that other route changes neither pause nor resume."""
        await _start_playing(controller, source)
        controller.handle_route_change(reason)
        assert controller.state is PlaybackState.PLAYING

        controller.pause()
        controller.handle_route_change(reason)
        assert controller.state is PlaybackState.PAUSED


class TestAppTransitions:
    """Test foreground and background transitions."""

    @pytest.mark.asyncio
    async def test_transitions_reassert_playback(
        self, controller: PlaybackController, source: FakeSource, audio_session: MagicMock
    ) -> None:
        """Test that transitions re-activate the session and resume the handle."""
        await _start_playing(controller, source)
        audio_session.reset_mock()

        controller.handle_background_transition()
        controller.handle_foreground_transition()

        assert audio_session.activate.call_count == 2
        assert source.current.resume_calls == 2
        assert controller.state is PlaybackState.PLAYING

    @pytest.mark.asyncio
    async def test_transitions_do_not_start_playback(
        self, controller: PlaybackController, source: FakeSource, audio_session: MagicMock
    ) -> None:
        """Test that transitions leave a paused controller alone."""
        await _start_playing(controller, source)
        controller.pause()
        audio_session.reset_mock()

        controller.handle_foreground_transition()

        audio_session.activate.assert_not_called()
        assert source.current.resume_calls == 0
        assert controller.state is PlaybackState.PAUSED


class TestListeners:
    """Test state change notifications."""

    @pytest.mark.asyncio
    async def test_listener_sees_transitions_in_order(
        self, controller: PlaybackController, source: FakeSource
    ) -> None:
        """Test that listeners receive every transition once and in order."""
        states: list[PlaybackState] = []
        controller.add_state_listener(states.append)

        await _start_playing(controller, source)
        controller.pause()

        assert states == [PlaybackState.BUFFERING, PlaybackState.PLAYING, PlaybackState.PAUSED]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, controller: PlaybackController) -> None:
        """Test that an unsubscribed listener is no longer called."""
        listener = MagicMock()
        unsubscribe = controller.add_state_listener(listener)
        unsubscribe()

        controller.play()

        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_controller(
        self, controller: PlaybackController
    ) -> None:
        """Test that an exception in a listener is contained."""
        controller.add_state_listener(MagicMock(side_effect=RuntimeError("boom")))
        seen: list[PlaybackState] = []
        controller.add_state_listener(seen.append)

        controller.play()

        assert controller.state is PlaybackState.BUFFERING
        assert seen == [PlaybackState.BUFFERING]

    @pytest.mark.asyncio
    async def test_async_listener(self, controller: PlaybackController) -> None:
        """Test that coroutine listeners are scheduled on the loop."""
        seen: list[PlaybackState] = []

        async def listener(state: PlaybackState) -> None:
            seen.append(state)

        controller.add_state_listener(listener)
        controller.play()
        await asyncio.sleep(0)

        assert seen == [PlaybackState.BUFFERING]


class TestClose:
    """Test shutting the controller down."""

    @pytest.mark.asyncio
    async def test_close_releases_everything(
        self, controller: PlaybackController, source: FakeSource, audio_session: MagicMock
    ) -> None:
        """Test that close() drops the stream, the retry and the session."""
        await _start_playing(controller, source)
        source.current.emit(StreamFailed("boom"))

        await controller.close()
        await asyncio.sleep(BACKOFF_WAIT)

        assert controller.state is PlaybackState.IDLE
        assert source.current.closed
        assert len(source.handles) == 1
        audio_session.deactivate.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_twice(self, controller: PlaybackController) -> None:
        """Test that closing twice is harmless."""
        await controller.close()
        await controller.close()

        assert controller.state is PlaybackState.IDLE
