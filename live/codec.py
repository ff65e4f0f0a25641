"""
Gemini Live JSON Codec

Encodes client messages to their JSON wire form and decodes anything
received (or sent) back into protocol dataclasses.

Wire format quirks:
    The service is not consistent about key naming. Some messages use
    camelCase (``serverContent``), older ones snake_case
    (``server_content``). Decoding accepts both spellings for every
    field; encoding always emits camelCase, the form documented for
    every BidiGenerateContent message. Unknown fields are ignored.
"""

import json
import re
from typing import Any, Dict, Union

from core.errors import DecodeError
from core.types import (
    Content, FileData, FunctionCall, FunctionResponse, InlineData, Part,
)
from .protocol import (
    EMPTY, ActivityDetection, ClientContentMessage, RealtimeInputMessage,
    ServerContent, ServerMessage, SetupMessage, ToolResponseMessage, Tools,
)

SNIPPET_LENGTH = 200

ClientMessage = Union[SetupMessage, ClientContentMessage, RealtimeInputMessage, ToolResponseMessage]
Message = Union[ClientMessage, ServerMessage]

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def snake_case(name: str) -> str:
    """camelCase → snake_case"""
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def snippet(text: Any, limit: int = SNIPPET_LENGTH) -> str:
    """Truncated printable form of a payload for error reports"""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode('utf-8', errors='replace')
    text = str(text)
    return text if len(text) <= limit else text[:limit] + "..."


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Look up a camelCase key, falling back to its snake_case spelling."""
    if not isinstance(obj, dict):
        return default
    if key in obj:
        return obj[key]
    return obj.get(snake_case(key), default)


def _has(obj: Any, key: str) -> bool:
    return isinstance(obj, dict) and (key in obj or snake_case(key) in obj)


def _typed(obj: Any, key: str, kind: type, default: Any = None) -> Any:
    """Look up a key and check its JSON type. Missing or null gives the default."""
    value = _get(obj, key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise TypeError(f"{key} must be {kind.__name__}, got {type(value).__name__}")
    return value


class Codec:
    """
    Live API message encoder/decoder.

    Stateless; a single instance may be shared between tasks.
    """

    def encode(self, msg: ClientMessage) -> str:
        """Encode a client message to JSON text"""
        return json.dumps(self.to_wire(msg))

    def decode(self, data: Union[str, bytes, None]) -> Message:
        """
        Decode JSON text into a message.

        Returns the EMPTY sentinel for None or blank input.
        Raises DecodeError for malformed JSON or unexpected shapes.
        """
        if data is None:
            return EMPTY

        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode('utf-8')
            except UnicodeDecodeError as e:
                raise DecodeError(f"Payload is not UTF-8: {e}", snippet(data)) from e

        if not data.strip():
            return EMPTY

        try:
            obj = json.loads(data)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Malformed JSON: {e}", snippet(data)) from e

        if not isinstance(obj, dict):
            raise DecodeError(
                f"Expected a JSON object, got {type(obj).__name__}", snippet(data)
            )

        try:
            return self.from_wire(obj)
        except (TypeError, AttributeError, ValueError) as e:
            raise DecodeError(f"Unexpected message shape: {e}", snippet(data)) from e

    # ─── Encoding ──────────────────────────────────────────────────

    def to_wire(self, msg: ClientMessage) -> Dict[str, Any]:
        """Convert a client message to its JSON-ready dict"""

        if isinstance(msg, SetupMessage):
            return {"setup": self._encode_setup(msg)}

        elif isinstance(msg, ClientContentMessage):
            return {
                "clientContent": {
                    "turnComplete": msg.turn_complete,
                    "turns": [self.encode_content(c) for c in msg.turns],
                }
            }

        elif isinstance(msg, RealtimeInputMessage):
            return {
                "realtimeInput": {
                    "mediaChunks": [
                        {"mimeType": chunk.mime_type, "data": chunk.data}
                        for chunk in msg.media_chunks
                    ]
                }
            }

        elif isinstance(msg, ToolResponseMessage):
            return {
                "toolResponse": {
                    "functionResponses": [
                        self._encode_function_response(fr)
                        for fr in msg.function_responses
                    ]
                }
            }

        else:
            raise TypeError(f"Cannot encode message type: {type(msg).__name__}")

    def _encode_setup(self, msg: SetupMessage) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "responseModalities": list(msg.response_modalities),
        }
        if msg.voice:
            generation_config["speechConfig"] = {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": msg.voice}
                }
            }

        setup: Dict[str, Any] = {
            "model": msg.model,
            "generationConfig": generation_config,
        }

        if msg.system_instruction:
            setup["systemInstruction"] = {
                "parts": [{"text": msg.system_instruction}]
            }

        if not msg.tools.is_empty:
            tool: Dict[str, Any] = {}
            if msg.tools.function_declarations:
                tool["functionDeclarations"] = list(msg.tools.function_declarations)
            if msg.tools.google_search:
                tool["googleSearch"] = {}
            if msg.tools.code_execution:
                tool["codeExecution"] = {}
            if msg.tools.url_context:
                tool["urlContext"] = {}
            setup["tools"] = [tool]

        ad = msg.activity_detection
        setup["realtimeInputConfig"] = {
            "automaticActivityDetection": {
                "disabled": ad.disabled,
                "prefixPaddingMs": ad.prefix_padding_ms,
                "silenceDurationMs": ad.silence_duration_ms,
            }
        }
        return setup

    def encode_content(self, content: Content) -> Dict[str, Any]:
        return {
            "role": content.role,
            "parts": [self.encode_part(p) for p in content.parts],
        }

    def encode_part(self, part: Part) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if part.text is not None:
            out["text"] = part.text
        if part.inline_data is not None:
            out["inlineData"] = {
                "mimeType": part.inline_data.mime_type,
                "data": part.inline_data.data,
            }
        if part.file_data is not None:
            out["fileData"] = {
                "mimeType": part.file_data.mime_type,
                "fileUri": part.file_data.file_uri,
            }
        if part.function_call is not None:
            fc = {"name": part.function_call.name, "args": part.function_call.args}
            if part.function_call.id is not None:
                fc["id"] = part.function_call.id
            out["functionCall"] = fc
        if part.function_response is not None:
            out["functionResponse"] = self._encode_function_response(part.function_response)
        return out

    @staticmethod
    def _encode_function_response(fr: FunctionResponse) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if fr.id is not None:
            out["id"] = fr.id
        out["name"] = fr.name
        out["response"] = fr.response
        return out

    # ─── Decoding ──────────────────────────────────────────────────

    def from_wire(self, obj: Dict[str, Any]) -> Message:
        """Convert a parsed JSON object to a message"""

        if _has(obj, "setup"):
            return self._decode_setup(_get(obj, "setup") or {})

        elif _has(obj, "clientContent"):
            cc = _get(obj, "clientContent") or {}
            return ClientContentMessage(
                turns=[self.decode_content(t) for t in _get(cc, "turns") or []],
                turn_complete=bool(_get(cc, "turnComplete", False)),
            )

        elif _has(obj, "realtimeInput"):
            ri = _get(obj, "realtimeInput") or {}
            chunks = [self._decode_inline(c) for c in _get(ri, "mediaChunks") or []]
            # Single-chunk forms used by newer clients
            for key in ("audio", "video"):
                if _get(ri, key):
                    chunks.append(self._decode_inline(_get(ri, key)))
            return RealtimeInputMessage(media_chunks=chunks)

        elif _has(obj, "toolResponse"):
            tr = _get(obj, "toolResponse") or {}
            return ToolResponseMessage(function_responses=[
                self._decode_function_response(fr)
                for fr in _get(tr, "functionResponses") or []
            ])

        return self._decode_server(obj)

    def _decode_setup(self, setup: Dict[str, Any]) -> SetupMessage:
        gen = _get(setup, "generationConfig") or {}
        voice = _get(_get(_get(_get(gen, "speechConfig"), "voiceConfig"),
                          "prebuiltVoiceConfig"), "voiceName")

        system_parts = _get(_get(setup, "systemInstruction"), "parts") or []
        system = "".join(p.text for p in map(self.decode_part, system_parts) if p.text) or None

        tools = Tools()
        raw_tools = _get(setup, "tools") or []
        if isinstance(raw_tools, dict):
            raw_tools = [raw_tools]
        for tool in raw_tools:
            tools.function_declarations.extend(_get(tool, "functionDeclarations") or [])
            tools.google_search = tools.google_search or _get(tool, "googleSearch") is not None
            tools.code_execution = tools.code_execution or _get(tool, "codeExecution") is not None
            tools.url_context = tools.url_context or _get(tool, "urlContext") is not None

        aad = _get(_get(setup, "realtimeInputConfig"), "automaticActivityDetection") or {}
        defaults = ActivityDetection()
        activity = ActivityDetection(
            disabled=bool(_get(aad, "disabled", defaults.disabled)),
            prefix_padding_ms=int(_get(aad, "prefixPaddingMs", defaults.prefix_padding_ms)),
            silence_duration_ms=int(_get(aad, "silenceDurationMs", defaults.silence_duration_ms)),
        )

        return SetupMessage(
            model=_get(setup, "model") or "",
            response_modalities=list(_get(gen, "responseModalities") or []),
            system_instruction=system,
            tools=tools,
            activity_detection=activity,
            voice=voice,
        )

    def _decode_server(self, obj: Dict[str, Any]) -> ServerMessage:
        msg = ServerMessage(setup_complete=_has(obj, "setupComplete"))

        sc = _get(obj, "serverContent")
        if sc is not None:
            model_turn = _get(sc, "modelTurn") or {}
            msg.server_content = ServerContent(
                parts=[self.decode_part(p) for p in _get(model_turn, "parts") or []],
                turn_complete=bool(_get(sc, "turnComplete", False)),
                generation_complete=bool(_get(sc, "generationComplete", False)),
                interrupted=bool(_get(sc, "interrupted", False)),
                input_transcription=_typed(_get(sc, "inputTranscription"), "text", str),
                output_transcription=_typed(_get(sc, "outputTranscription"), "text", str),
            )

        tc = _get(obj, "toolCall")
        if tc is not None:
            msg.function_calls = [
                self._decode_function_call(fc) for fc in _get(tc, "functionCalls") or []
            ]

        cancellation = _get(obj, "toolCallCancellation")
        if cancellation is not None:
            msg.cancelled_call_ids = [str(i) for i in _get(cancellation, "ids") or []]

        msg.usage_metadata = _get(obj, "usageMetadata")
        msg.grounding_metadata = _get(obj, "groundingMetadata")
        msg.go_away = _typed(obj, "goAway", dict)
        return msg

    def decode_content(self, obj: Dict[str, Any]) -> Content:
        return Content(
            role=_get(obj, "role") or "user",
            parts=[self.decode_part(p) for p in _get(obj, "parts") or []],
        )

    def decode_part(self, obj: Dict[str, Any]) -> Part:
        if not isinstance(obj, dict):
            raise TypeError(f"part must be an object, got {type(obj).__name__}")

        part = Part(text=_typed(obj, "text", str))

        inline = _get(obj, "inlineData")
        if inline is not None:
            part.inline_data = self._decode_inline(inline)

        file_data = _get(obj, "fileData")
        if file_data is not None:
            part.file_data = FileData(
                file_uri=_typed(file_data, "fileUri", str, ""),
                mime_type=_typed(file_data, "mimeType", str) or "video/*",
            )

        fc = _get(obj, "functionCall")
        if fc is not None:
            part.function_call = self._decode_function_call(fc)

        fr = _get(obj, "functionResponse")
        if fr is not None:
            part.function_response = self._decode_function_response(fr)

        return part

    @staticmethod
    def _decode_inline(obj: Dict[str, Any]) -> InlineData:
        if not isinstance(obj, dict):
            raise TypeError(f"inline data must be an object, got {type(obj).__name__}")
        return InlineData(
            mime_type=_typed(obj, "mimeType", str, ""),
            data=_typed(obj, "data", str, ""),
        )

    @staticmethod
    def _decode_function_call(obj: Dict[str, Any]) -> FunctionCall:
        if not isinstance(obj, dict):
            raise TypeError(f"function call must be an object, got {type(obj).__name__}")
        call_id = _get(obj, "id")
        return FunctionCall(
            name=_typed(obj, "name", str, ""),
            args=_typed(obj, "args", dict, {}),
            id=str(call_id) if call_id is not None else None,
        )

    @staticmethod
    def _decode_function_response(obj: Dict[str, Any]) -> FunctionResponse:
        call_id = _get(obj, "id")
        return FunctionResponse(
            name=_get(obj, "name") or "",
            response=_get(obj, "response") or {},
            id=str(call_id) if call_id is not None else None,
        )
