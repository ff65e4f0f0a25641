"""
Caller-facing event hooks.

LiveCallbacks is a plain record of independently optional callables.
Unset hooks default to a shared no-op. Hooks run synchronously on the
event loop, inside the task that produced the event, so they should
return quickly; a hook that raises is logged and otherwise ignored.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, List, Optional

from core.types import FunctionCall, LiveStatus

logger = logging.getLogger("live.callbacks")


def _noop(*args, **kwargs):
    pass


@dataclass(frozen=True)
class LiveCallbacks:
    """Event hooks for a live client"""

    on_connected: Callable[[], Any] = _noop
    on_disconnected: Callable[[], Any] = _noop
    on_text_received: Callable[[str], Any] = _noop
    on_audio_started: Callable[[], Any] = _noop
    on_audio_stopped: Callable[[], Any] = _noop
    on_ai_speaking_started: Callable[[], Any] = _noop
    on_ai_speaking_stopped: Callable[[], Any] = _noop
    on_screen_capture_started: Callable[[], Any] = _noop
    on_screen_capture_stopped: Callable[[], Any] = _noop
    on_error: Callable[[str, Optional[BaseException]], Any] = _noop
    on_status_update: Callable[[LiveStatus], Any] = _noop

    # Base64 audio payload, in arrival order. Decoding and playback
    # belong to the caller.
    on_audio_chunk: Callable[[str], Any] = _noop

    # Protocol hooks
    before_setup: Callable[[], Any] = _noop
    on_text_frame: Callable[[str], Any] = _noop
    on_binary_frame: Callable[[str], Any] = _noop
    on_function_call_received: Callable[[List[FunctionCall]], Any] = _noop
    on_send_function_response: Callable[[str], Any] = _noop
    after_function_response_sent: Callable[[], Any] = _noop
    on_request_received_completely: Callable[[], Any] = _noop
    on_tool_call_cancellation: Callable[[List[str]], Any] = _noop
    on_turn_complete: Callable[[], Any] = _noop
    on_interrupted: Callable[[], Any] = _noop
    on_transcription: Callable[[str, str], Any] = _noop
    on_go_away: Callable[[Optional[str]], Any] = _noop

    @classmethod
    def hook_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def emit(self, name: str, *args) -> bool:
        """
        Invoke hook ``name``.

        Returns False if the hook raised. The exception is logged, never
        propagated, so a faulty hook cannot tear down the receive loop.
        """
        hook = getattr(self, name)
        try:
            hook(*args)
        except Exception:
            logger.exception(f"Callback {name} raised")
            return False
        return True


NO_CALLBACKS = LiveCallbacks()
