"""
Connection state of a live client.

The boolean flags are written from several tasks (receive loop,
capture loop, caller sends) and possibly from caller threads (an audio
callback toggling speech intent). They live behind one lock and change
only through compare-and-set style transitions.
"""

import threading
from enum import Enum
from typing import Dict

CONNECTED = "connected"
USER_SPEAKING = "user_speaking"
AI_SPEAKING = "ai_speaking"
CAPTURING = "capturing"

FLAGS = (CONNECTED, USER_SPEAKING, AI_SPEAKING, CAPTURING)


class SessionState(Enum):
    """Lifecycle of one client"""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    FAILED = "failed"       # idle, reached through an error

    @property
    def is_idle(self) -> bool:
        return self in (SessionState.IDLE, SessionState.FAILED)


class StateFlags:
    """
    Lock-guarded boolean flags.

    user_speaking and ai_speaking are independent: both may be set at
    once during a duplex conversation.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._flags: Dict[str, bool] = {name: False for name in FLAGS}

    def get(self, name: str) -> bool:
        with self._lock:
            return self._flags[name]

    def compare_and_set(self, name: str, expected: bool, value: bool) -> bool:
        """Set ``name`` to value if it currently equals expected."""
        with self._lock:
            if self._flags[name] != expected:
                return False
            self._flags[name] = value
            return True

    def get_and_set(self, name: str, value: bool) -> bool:
        """Set ``name`` and return its previous value."""
        with self._lock:
            previous = self._flags[name]
            self._flags[name] = value
            return previous

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._flags)

    def __repr__(self) -> str:
        flags = ", ".join(f"{k}={v}" for k, v in self.snapshot().items())
        return f"StateFlags({flags})"
