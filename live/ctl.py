"""
Text command interface to a live client.

One command per line, first word is the verb:

    say <text>          send a user text turn
    mic on|off          toggle the audio-input intent
    screen on|off       start/stop periodic screen capture
    resolution WxH      capture size, or "full" for the whole display
    mute / unmute       local playback (needs an AudioIO)
    history             text turns sent so far
    voices              available prebuilt voices
    status              status report
    disconnect          close the session
"""

import logging
from typing import Optional

from core.types import FULL_SCREEN
from .audio import AudioIO
from .client import GeminiLiveClient
from .config import VOICES

logger = logging.getLogger("live.ctl")

COMMANDS = (
    "say", "mic", "screen", "resolution", "mute", "unmute",
    "history", "voices", "status", "disconnect",
)


def parse_resolution(arg: str):
    """'1280x720' → (1280, 720); 'full' → full screen"""
    arg = arg.strip().lower()
    if arg in ("full", "fullscreen", "-1"):
        return FULL_SCREEN, FULL_SCREEN
    try:
        w, h = arg.split("x", 1)
        return int(w), int(h)
    except ValueError:
        raise ValueError("Usage: resolution <width>x<height> | full")


def _on_off(cmd: str, arg: str) -> bool:
    arg = arg.strip().lower()
    if arg in ("on", "start", "1"):
        return True
    if arg in ("off", "stop", "0"):
        return False
    raise ValueError(f"Usage: {cmd} on|off")


class LiveCtlHandler:
    """Command handler for a GeminiLiveClient"""

    def __init__(self, client: GeminiLiveClient, audio: Optional[AudioIO] = None):
        self.client = client
        self.audio = audio

    async def execute(self, command: str) -> Optional[str]:
        """
        Execute a command, return optional response.

        Raises ValueError for unknown commands or bad arguments.
        """
        parts = command.strip().split(' ', 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "say":
            if not arg.strip():
                raise ValueError("Usage: say <text>")
            if await self.client.send_text_message(arg):
                return None
            return "Message not sent"

        elif cmd == "mic":
            if _on_off(cmd, arg):
                self.client.start_audio_input()
                return "Microphone on"
            self.client.stop_audio_input()
            return "Microphone off"

        elif cmd == "screen":
            if _on_off(cmd, arg):
                if self.client.start_screen_capture():
                    return f"Screen capture started ({self.client.geometry.capture_resolution})"
                return "Screen capture not started"
            self.client.stop_screen_capture()
            return "Screen capture stopped"

        elif cmd == "resolution":
            if not arg:
                return self.client.geometry.target_resolution
            width, height = parse_resolution(arg)
            self.client.set_screen_capture_resolution(width, height)
            return f"Capture resolution set to {self.client.geometry.target_resolution}"

        elif cmd in ("mute", "unmute"):
            if self.audio is None:
                return "Audio not available"
            self.audio.mute = cmd == "mute"
            return "Local playback muted" if self.audio.mute else "Local playback unmuted"

        elif cmd == "history":
            if not self.client.history:
                return "(empty)"
            return "\n".join(f"{c.role}: {c.text}" for c in self.client.history)

        elif cmd == "voices":
            return "\n".join(VOICES)

        elif cmd == "status":
            return self.get_status()

        elif cmd == "disconnect":
            await self.client.disconnect()
            return "Disconnected"

        else:
            raise ValueError(f"Unknown command: {cmd}. Available: {', '.join(COMMANDS)}")

    def get_status(self) -> str:
        c = self.client
        status = c.get_status()
        lines = [
            f"state {c.state.value}",
            f"model {c.config.model}",
            f"modality {c.config.response_modality}",
            f"connected {status.is_connected}",
            f"mic {'on' if status.is_recording_audio else 'off'}",
            f"ai_speaking {status.is_ai_speaking}",
            f"screen {'on' if status.is_capturing_screen else 'off'}",
            f"capture_resolution {status.capture_resolution}",
            f"target_resolution {status.target_resolution}",
            f"messages {len(c.history)}",
        ]
        if c.config.voice:
            lines.append(f"voice {c.config.voice}")
        if self.audio is not None:
            lines.append(f"muted {self.audio.mute}")
        return "\n".join(lines)
