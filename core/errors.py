"""
Error taxonomy for the live client.

None of these is fatal: the client reports them through the on_error
callback and keeps (or restores) a usable state.
"""

from typing import Optional


class LiveError(Exception):
    """Base class for all live client errors"""


class TransportError(LiveError):
    """Opening, writing to or closing the connection failed"""


class DecodeError(LiveError):
    """A payload could not be decoded"""

    def __init__(self, message: str, snippet: str = ""):
        super().__init__(message)
        self.snippet = snippet


class UnsupportedContentError(LiveError):
    """A recognised payload shape the client does not handle"""

    def __init__(self, message: str, mime_type: Optional[str] = None):
        super().__init__(message)
        self.mime_type = mime_type


class CapabilityUnavailableError(LiveError):
    """A screen or audio device is not available"""


class ConfigurationError(LiveError, ValueError):
    """Invalid configuration value"""
