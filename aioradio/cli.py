"""Command-line interface for listening to a station."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

import aioconsole
from aiohttp import ClientSession
from mashumaro.exceptions import InvalidFieldValue, MissingField
from orjson import JSONDecodeError

from aioradio.config import StationConfig
from aioradio.models.types import (
    InterruptionType,
    PlaybackState,
    RetryBudget,
    RouteChangeReason,
    TransportCommand,
)
from aioradio.now_playing import NowPlayingPoller
from aioradio.player import PlaybackController, StreamSource
from aioradio.sleep_timer import SLEEP_TIMER_PRESETS, SleepTimer, SleepTimerState
from aioradio.transport import NowPlayingInfo, TransportInfoPublisher

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the radio client."""
    parser = argparse.ArgumentParser(description="Listen to an internet radio station")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with the station configuration",
    )
    parser.add_argument("--name", default=None, help="Station name shown without metadata")
    parser.add_argument("--stream-url", default=None, help="URL of the audio stream")
    parser.add_argument("--metadata-url", default=None, help="URL of the now playing endpoint")
    parser.add_argument(
        "--buffer",
        type=float,
        default=None,
        help="Seconds of audio to buffer before playback starts",
    )
    parser.add_argument(
        "--no-autoplay",
        action="store_true",
        help="Wait for the play command instead of starting immediately",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> StationConfig:
    """Build the station configuration from an optional file and CLI overrides."""
    config = StationConfig()
    if args.config is not None:
        config = StationConfig.from_json(args.config.read_bytes())
    overrides = config.to_dict()
    if args.name is not None:
        overrides["name"] = args.name
    if args.stream_url is not None:
        overrides["stream_url"] = args.stream_url
    if args.metadata_url is not None:
        overrides["metadata_url"] = args.metadata_url
    if args.buffer is not None:
        overrides["preferred_buffer_seconds"] = args.buffer
    return StationConfig.from_dict(overrides)


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous CLI workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))

    try:
        config = load_config(args)
    except (OSError, JSONDecodeError, MissingField, InvalidFieldValue, ValueError) as err:
        _print_event(f"Invalid configuration: {err}")
        return 2

    async with ClientSession() as session:
        source = StreamSource(session=session)
        controller = PlaybackController(
            config.endpoint(),
            source,
            retry_budget=RetryBudget(
                max_attempts=config.max_retries, backoff_seconds=config.retry_backoff
            ),
        )
        poller = NowPlayingPoller(
            config.metadata_url, session=session, interval=config.poll_interval
        )
        publisher = TransportInfoPublisher(
            controller,
            poller,
            station_name=config.name,
            default_artist=config.default_artist,
            station_artwork_url=config.artwork_url,
        )
        sleep_timer = SleepTimer(controller)

        controller.add_state_listener(_handle_state_change)
        publisher.add_listener(_NowPlayingPrinter())
        sleep_timer.add_listener(_handle_sleep_timer)

        _print_event(f"Tuned to {config.name}")
        _print_instructions()
        poller.start()
        if not args.no_autoplay:
            publisher.play()

        keyboard_task = asyncio.create_task(
            _keyboard_loop(controller, publisher, sleep_timer)
        )

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.debug("Received interrupt signal, shutting down...")
            keyboard_task.cancel()

        loop.add_signal_handler(signal.SIGINT, signal_handler)
        try:
            await keyboard_task
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            logger.debug("Keyboard loop cancelled")
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            publisher.detach()
            await sleep_timer.close()
            await poller.close()
            await controller.close()
            await source.close()

    return 0


def _handle_state_change(state: PlaybackState) -> None:
    messages = {
        PlaybackState.BUFFERING: "Buffering...",
        PlaybackState.PLAYING: "Playing",
        PlaybackState.PAUSED: "Paused",
        PlaybackState.FAILED: "Stream unavailable, type 'play' to try again",
    }
    if message := messages.get(state):
        _print_event(message)


class _NowPlayingPrinter:
    """Prints the now playing line whenever the track changes."""

    def __init__(self) -> None:
        self._last: tuple[str, str] | None = None

    def __call__(self, info: NowPlayingInfo) -> None:
        current = (info.title, info.artist)
        if current == self._last:
            return
        self._last = current
        _print_event(f"Now playing: {info.artist} - {info.title}")


def _handle_sleep_timer(state: SleepTimerState) -> None:
    if state.active and state.remaining_seconds % 60 == 0:
        _print_event(f"Sleep timer: {state.remaining_seconds // 60} min left")
    elif not state.active and state.remaining_seconds == 0:
        _print_event("Sleep timer off")


async def _keyboard_loop(
    controller: PlaybackController,
    publisher: TransportInfoPublisher,
    sleep_timer: SleepTimer,
) -> None:
    try:
        while True:
            try:
                line = await aioconsole.ainput()
            except EOFError:
                break
            parts = line.strip().lower().split()
            if not parts:
                continue
            keyword = parts[0]
            if keyword in {"quit", "exit", "q"}:
                break
            if keyword in {"play", "p"}:
                publisher.handle_command(TransportCommand.PLAY)
            elif keyword == "pause":
                publisher.handle_command(TransportCommand.PAUSE)
            elif keyword in {"toggle", "t"}:
                publisher.handle_command(TransportCommand.TOGGLE_PLAY_PAUSE)
            elif keyword == "sleep":
                _handle_sleep_command(sleep_timer, parts)
            elif keyword in {"info", "i"}:
                _print_event(_describe(controller, publisher.info, sleep_timer))
            elif keyword == "interrupt":
                controller.handle_interruption(InterruptionType.BEGAN)
            elif keyword == "resume":
                controller.handle_interruption(InterruptionType.ENDED, should_resume=True)
            elif keyword == "unplug":
                controller.handle_route_change(RouteChangeReason.OLD_DEVICE_UNAVAILABLE)
            else:
                _print_event("Unknown command")
    except asyncio.CancelledError:
        logger.debug("Keyboard loop cancelled, exiting gracefully")
        raise


def _handle_sleep_command(sleep_timer: SleepTimer, parts: list[str]) -> None:
    if len(parts) == 1:
        if sleep_timer.active:
            _print_event(f"Sleep timer: {sleep_timer.format_remaining()}")
        else:
            presets = ", ".join(str(minutes) for minutes in SLEEP_TIMER_PRESETS)
            _print_event(f"Sleep timer off (presets: {presets} min)")
        return
    if parts[1] == "off":
        sleep_timer.stop()
        return
    try:
        minutes = int(parts[1])
        sleep_timer.start(minutes)
    except ValueError:
        _print_event("Usage: sleep [<minutes>|off]")


def _describe(
    controller: PlaybackController, info: NowPlayingInfo, sleep_timer: SleepTimer
) -> str:
    lines = [
        f"Station stream: {controller.endpoint.url}",
        f"State: {controller.state.value}",
        f"Now playing: {info.artist} - {info.title}",
    ]
    if info.duration_seconds:
        lines.append(f"Progress: {info.elapsed_seconds} / {info.duration_seconds} s")
    if controller.last_failure:
        lines.append(f"Last problem: {controller.last_failure}")
    if sleep_timer.active:
        lines.append(f"Sleep timer: {sleep_timer.format_remaining()}")
    return "\n".join(lines)


def _print_event(message: str) -> None:
    print(message, flush=True)  # noqa: T201


def _print_instructions() -> None:
    print(  # noqa: T201
        (
            "Commands: play(p), pause, toggle(t), sleep [<min>|off], info(i), quit(q)\n"
            "  interrupt / resume / unplug simulate audio session events"
        ),
        flush=True,
    )


def main() -> int:
    """Run the CLI client."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
