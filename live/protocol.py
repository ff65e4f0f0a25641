"""
Gemini Live Protocol Message Types

Messages exchanged over the BidiGenerateContent WebSocket.

Client → server:
    SetupMessage            first message of every session
    ClientContentMessage    conversation turns (text, images, ...)
    RealtimeInputMessage    streamed media chunks (audio)
    ToolResponseMessage     results of function calls

Server → client:
    ServerMessage           everything else: setupComplete, serverContent,
                            toolCall, toolCallCancellation, usage, goAway
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.types import Content, FunctionCall, FunctionResponse, InlineData, Part


@dataclass
class ActivityDetection:
    """Server-side speech segmentation settings"""
    disabled: bool = False
    prefix_padding_ms: int = 20
    silence_duration_ms: int = 1500


@dataclass
class Tools:
    """Tool set declared in the setup message"""
    function_declarations: List[Dict[str, Any]] = field(default_factory=list)
    google_search: bool = False
    code_execution: bool = False
    url_context: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.function_declarations or self.google_search
                    or self.code_execution or self.url_context)


@dataclass
class SetupMessage:
    """BidiGenerateContentSetup"""
    model: str
    response_modalities: List[str] = field(default_factory=lambda: ["AUDIO"])
    system_instruction: Optional[str] = None
    tools: Tools = field(default_factory=Tools)
    activity_detection: ActivityDetection = field(default_factory=ActivityDetection)
    voice: Optional[str] = None


@dataclass
class ClientContentMessage:
    """BidiGenerateContentClientContent"""
    turns: List[Content] = field(default_factory=list)
    turn_complete: bool = False


@dataclass
class RealtimeInputMessage:
    """BidiGenerateContentRealtimeInput (media chunks)"""
    media_chunks: List[InlineData] = field(default_factory=list)


@dataclass
class ToolResponseMessage:
    """BidiGenerateContentToolResponse"""
    function_responses: List[FunctionResponse] = field(default_factory=list)


@dataclass
class ServerContent:
    """Model output carried by a serverContent message"""
    parts: List[Part] = field(default_factory=list)
    turn_complete: bool = False
    generation_complete: bool = False
    interrupted: bool = False
    input_transcription: Optional[str] = None
    output_transcription: Optional[str] = None

    @property
    def audio_parts(self) -> List[Part]:
        return [p for p in self.parts if p.is_audio]

    @property
    def has_audio(self) -> bool:
        return any(p.is_audio for p in self.parts)


@dataclass
class ServerMessage:
    """
    Any message received from the server.

    Fields are None when the corresponding section was absent. A message
    with every field unset is the empty sentinel returned for blank input.
    """
    setup_complete: bool = False
    server_content: Optional[ServerContent] = None
    function_calls: Optional[List[FunctionCall]] = None
    cancelled_call_ids: Optional[List[str]] = None
    usage_metadata: Optional[Dict[str, Any]] = None
    grounding_metadata: Optional[Dict[str, Any]] = None
    go_away: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return self == EMPTY

    @property
    def has_audio(self) -> bool:
        return self.server_content is not None and self.server_content.has_audio

    @property
    def is_tool_call(self) -> bool:
        return self.function_calls is not None


EMPTY = ServerMessage()
