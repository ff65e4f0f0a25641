# Gemini Live client
from .config import LiveConfig
from .callbacks import LiveCallbacks, NO_CALLBACKS
from .client import GeminiLiveClient
from .session import LiveSession, create_live_session
from .state import SessionState
from .codec import Codec
from .channel import ConnectionChannel, WebSocketChannel, Frame, FrameKind
from .capture import ScreenCapture, MssScreenCapture

__all__ = [
    'LiveConfig',
    'LiveCallbacks',
    'NO_CALLBACKS',
    'GeminiLiveClient',
    'LiveSession',
    'create_live_session',
    'SessionState',
    'Codec',
    'ConnectionChannel',
    'WebSocketChannel',
    'Frame',
    'FrameKind',
    'ScreenCapture',
    'MssScreenCapture',
]
