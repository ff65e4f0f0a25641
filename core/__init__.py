# Shared conversation types and errors
from .types import (
    InlineData,
    FileData,
    FunctionCall,
    FunctionResponse,
    Part,
    Content,
    Rect,
    LiveStatus,
    ROLE_USER,
    ROLE_MODEL,
    MIME_JPEG,
    MIME_PCM,
    MIME_PCM_16K,
    FULL_SCREEN,
)
from .errors import (
    LiveError,
    TransportError,
    DecodeError,
    UnsupportedContentError,
    CapabilityUnavailableError,
    ConfigurationError,
)

__all__ = [
    'InlineData',
    'FileData',
    'FunctionCall',
    'FunctionResponse',
    'Part',
    'Content',
    'Rect',
    'LiveStatus',
    'ROLE_USER',
    'ROLE_MODEL',
    'MIME_JPEG',
    'MIME_PCM',
    'MIME_PCM_16K',
    'FULL_SCREEN',
    'LiveError',
    'TransportError',
    'DecodeError',
    'UnsupportedContentError',
    'CapabilityUnavailableError',
    'ConfigurationError',
]
