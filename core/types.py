"""
Core types for Gemini Live conversations.

Content parts, conversation turns, function calls and the small
geometry/status records shared by the live client and its capture task.
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Roles
ROLE_USER = "user"
ROLE_MODEL = "model"

# Common media types
MIME_JPEG = "image/jpeg"
MIME_PNG = "image/png"
MIME_PCM = "audio/pcm"
MIME_PCM_16K = "audio/pcm;rate=16000"

# Target size sentinel meaning "capture the whole display"
FULL_SCREEN = -1


@dataclass
class InlineData:
    """Binary payload embedded in a message (base64 text + media type)"""
    mime_type: str
    data: str  # base64

    @property
    def is_audio(self) -> bool:
        return self.mime_type.lower().startswith("audio/")

    def decode(self) -> bytes:
        return base64.b64decode(self.data)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> 'InlineData':
        return cls(mime_type=mime_type, data=base64.b64encode(data).decode('ascii'))


@dataclass
class FileData:
    """Reference to an uploaded file"""
    file_uri: str
    mime_type: str = "video/*"


@dataclass
class FunctionCall:
    """A function the model asked the client to run"""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class FunctionResponse:
    """Result of a function call, sent back to the model"""
    name: str
    response: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class Part:
    """
    One content part.

    Exactly one of the payload fields is expected to be set; the codec
    does not enforce it, so a part received with several payloads keeps
    all of them.
    """
    text: Optional[str] = None
    inline_data: Optional[InlineData] = None
    file_data: Optional[FileData] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None

    @classmethod
    def from_text(cls, text: str) -> 'Part':
        return cls(text=text)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> 'Part':
        return cls(inline_data=InlineData.from_bytes(data, mime_type))

    @property
    def is_audio(self) -> bool:
        return self.inline_data is not None and self.inline_data.is_audio


@dataclass
class Content:
    """A role-tagged conversation turn"""
    role: str = ROLE_USER
    parts: List[Part] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if p.text)


@dataclass(frozen=True)
class Rect:
    """Screen rectangle in display coordinates"""
    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class LiveStatus:
    """Point-in-time snapshot of a live client"""
    is_connected: bool
    is_recording_audio: bool
    is_user_speaking: bool
    is_ai_speaking: bool
    is_capturing_screen: bool
    capture_resolution: str
    target_resolution: str

    def to_dict(self) -> dict:
        return {
            "connected": self.is_connected,
            "recording_audio": self.is_recording_audio,
            "user_speaking": self.is_user_speaking,
            "ai_speaking": self.is_ai_speaking,
            "capturing_screen": self.is_capturing_screen,
            "capture_resolution": self.capture_resolution,
            "target_resolution": self.target_resolution,
        }
