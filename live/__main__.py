"""
gemini-live — interactive Gemini Live session from a terminal

Usage:
    python -m live --modality TEXT
    python -m live --voice Puck --screen --resolution 1280x720 -v

Reads GEMINI_API_KEY from the environment or a .env file.

Typed lines are sent as user text. Lines starting with '/' are
commands (see live.ctl):

    /mic on             stream the microphone
    /screen on          send a screen frame every --interval-ms
    /resolution full
    /status
    /quit
"""

import argparse
import asyncio
import logging
import sys
import threading
from typing import Optional

from core.errors import ConfigurationError
from .audio import AUDIO_AVAILABLE, AudioIO
from .callbacks import LiveCallbacks
from .config import MODALITIES, VOICES, LiveConfig
from .ctl import LiveCtlHandler, parse_resolution
from .session import create_live_session
from .state import SessionState

# How long to wait for the session to come up before giving up (seconds)
CONNECT_WAIT = 15.0


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
    """Feed stdin lines into queue from a daemon thread; None marks EOF."""
    def reader():
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line.rstrip('\n'))
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=reader, name="stdin-reader", daemon=True).start()


def build_callbacks(audio: Optional[AudioIO]) -> LiveCallbacks:
    def on_error(message, exc=None):
        print(f"\n[error] {message}", file=sys.stderr)

    kwargs = dict(
        on_connected=lambda: print("[connected]"),
        on_disconnected=lambda: print("\n[disconnected]"),
        on_text_received=lambda text: print(text, end="", flush=True),
        on_turn_complete=lambda: print(),
        on_error=on_error,
        on_screen_capture_started=lambda: print("[screen capture on]"),
        on_screen_capture_stopped=lambda: print("[screen capture off]"),
        on_go_away=lambda time_left: print(f"\n[server closing session in {time_left}]"),
    )
    if audio is not None:
        kwargs.update(on_audio_chunk=audio.play, on_interrupted=audio.flush)
    return LiveCallbacks(**kwargs)


async def _wait_connected(session) -> bool:
    waited = 0.0
    while not session.client.is_connected:
        if session.done or waited >= CONNECT_WAIT:
            return False
        await asyncio.sleep(0.05)
        waited += 0.05
    return True


async def run(args) -> int:
    overrides = {
        "response_modality": args.modality,
        "image_send_interval_ms": args.interval_ms,
        "google_search": args.google_search,
        "code_execution": args.code_execution,
    }
    if args.model:
        overrides["model"] = args.model
    if args.voice:
        overrides["voice"] = args.voice
    if args.system:
        overrides["system_instruction"] = args.system

    try:
        config = LiveConfig.from_env(**overrides)
        config.websocket_url()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    audio = None
    if config.response_modality == "AUDIO" and not args.no_audio:
        if AUDIO_AVAILABLE:
            audio = AudioIO(input_device=args.input_device, output_device=args.output_device)
        else:
            print("PyAudio not available: audio output disabled", file=sys.stderr)

    print("gemini-live")
    print(f"  Model:    {config.model}")
    print(f"  Modality: {config.response_modality}")
    print()

    session = create_live_session(config, build_callbacks(audio))
    client = session.client
    handler = LiveCtlHandler(client, audio)
    side_tasks = []

    try:
        if not await _wait_connected(session):
            print("Error: could not connect", file=sys.stderr)
            return 1

        if audio is not None:
            side_tasks.append(asyncio.create_task(audio.play_output(), name="speaker"))
            side_tasks.append(asyncio.create_task(audio.stream_microphone(client), name="microphone"))

        if args.resolution:
            client.set_screen_capture_resolution(*args.resolution)
        if args.screen:
            client.start_screen_capture()

        lines: asyncio.Queue = asyncio.Queue()
        _start_stdin_reader(asyncio.get_running_loop(), lines)

        while not session.done:
            getter = asyncio.ensure_future(lines.get())
            done, _ = await asyncio.wait(
                {getter, session.task}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter not in done:
                getter.cancel()
                break

            line = getter.result()
            if line is None:
                break
            line = line.strip()
            if not line:
                continue

            if not line.startswith('/'):
                await client.send_text_message(line)
                continue

            command = line[1:]
            if command in ("quit", "exit"):
                break
            try:
                response = await handler.execute(command)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                continue
            if response:
                print(response)
    finally:
        for task in side_tasks:
            task.cancel()
        await asyncio.gather(*side_tasks, return_exceptions=True)
        session.cancel()
        await session.wait()
        if audio is not None:
            audio.close()

    return 1 if client.state is SessionState.FAILED else 0


def main():
    parser = argparse.ArgumentParser(
        description="Interactive Gemini Live session (text, microphone, screen)"
    )
    parser.add_argument(
        '--model',
        help='Model id (default: $GEMINI_LIVE_MODEL or the built-in default)'
    )
    parser.add_argument(
        '--modality', default='AUDIO', type=str.upper, choices=MODALITIES,
        help='Response modality (default: AUDIO)'
    )
    parser.add_argument(
        '--voice', choices=VOICES,
        help='Prebuilt voice for AUDIO responses'
    )
    parser.add_argument(
        '--system',
        help='System instruction'
    )
    parser.add_argument(
        '--screen', action='store_true',
        help='Start screen capture once connected'
    )
    parser.add_argument(
        '--resolution', type=parse_resolution,
        help='Screen capture size WxH, or "full" (default: full)'
    )
    parser.add_argument(
        '--interval-ms', type=int, default=5000,
        help='Milliseconds between screen frames (default: 5000)'
    )
    parser.add_argument(
        '--google-search', action='store_true',
        help='Enable the Google Search tool'
    )
    parser.add_argument(
        '--code-execution', action='store_true',
        help='Enable the code execution tool'
    )
    parser.add_argument(
        '--no-audio', action='store_true',
        help='Do not open microphone or speaker'
    )
    parser.add_argument(
        '--input-device', type=int,
        help='PyAudio input device index'
    )
    parser.add_argument(
        '--output-device', type=int,
        help='PyAudio output device index'
    )
    parser.add_argument(
        '--verbose', '-v', action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--debug', action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    # Configure logging
    level = logging.WARNING
    if args.verbose:
        level = logging.INFO
    if args.debug:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
        datefmt='%H:%M:%S'
    )

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)


if __name__ == '__main__':
    main()
