import json

import pytest

from core.errors import DecodeError
from core.types import Content, FunctionResponse, InlineData, Part
from live.codec import Codec, snake_case, snippet
from live.protocol import (
    EMPTY, ActivityDetection, ClientContentMessage, RealtimeInputMessage,
    ServerMessage, SetupMessage, ToolResponseMessage, Tools,
)


@pytest.fixture
def codec():
    return Codec()


class TestDecodeBlank:

    @pytest.mark.parametrize("data", [None, "", "   ", "\n\t", b""])
    def test_blank_input_is_empty_sentinel(self, codec, data):
        msg = codec.decode(data)
        assert msg is EMPTY
        assert msg.is_empty

    def test_empty_object_is_empty(self, codec):
        assert codec.decode("{}").is_empty


class TestDecodeErrors:

    def test_malformed_json(self, codec):
        with pytest.raises(DecodeError) as info:
            codec.decode('{"serverContent": ')
        assert info.value.snippet == '{"serverContent": '

    def test_snippet_is_truncated(self, codec):
        payload = '{"x": "' + "a" * 500
        with pytest.raises(DecodeError) as info:
            codec.decode(payload)
        assert len(info.value.snippet) == 203
        assert info.value.snippet.endswith("...")

    def test_non_object(self, codec):
        with pytest.raises(DecodeError):
            codec.decode("[1, 2, 3]")

    def test_invalid_utf8(self, codec):
        with pytest.raises(DecodeError):
            codec.decode(b"\xff\xfe{")

    def test_bad_part_shape(self, codec):
        with pytest.raises(DecodeError):
            codec.decode('{"serverContent": {"modelTurn": {"parts": ["oops"]}}}')

    @pytest.mark.parametrize("payload", [
        {"serverContent": {"modelTurn": {"parts": [{"text": 5}]}}},
        {"serverContent": {"modelTurn": {"parts": [{"inlineData": {"mimeType": 7, "data": "AAAA"}}]}}},
        {"serverContent": {"modelTurn": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": []}}]}}},
        {"serverContent": {"outputTranscription": {"text": ["a"]}}},
        {"toolCall": {"functionCalls": [{"name": 3, "args": {}}]}},
        {"toolCall": {"functionCalls": [{"name": "f", "args": "x=1"}]}},
        {"toolCall": {"functionCalls": ["f"]}},
        {"goAway": "soon"},
    ])
    def test_wrongly_typed_field(self, codec, payload):
        with pytest.raises(DecodeError) as info:
            codec.decode(json.dumps(payload))
        assert "must be" in str(info.value)

    def test_decode_error_is_live_error(self, codec):
        from core.errors import LiveError
        with pytest.raises(LiveError):
            codec.decode("not json")


class TestDecodeServer:

    def test_model_turn_text_and_audio(self, codec):
        msg = codec.decode(json.dumps({
            "serverContent": {
                "modelTurn": {"parts": [
                    {"text": "hello"},
                    {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": "AAAA"}},
                ]},
                "turnComplete": True,
                "generationComplete": True,
            }
        }))
        assert isinstance(msg, ServerMessage)
        content = msg.server_content
        assert content.parts[0].text == "hello"
        assert content.parts[1].inline_data.mime_type == "audio/pcm;rate=24000"
        assert content.turn_complete and content.generation_complete
        assert msg.has_audio
        assert len(content.audio_parts) == 1

    def test_snake_case_equivalent(self, codec):
        camel = codec.decode(json.dumps({
            "serverContent": {
                "modelTurn": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": "AA"}}]},
                "turnComplete": True,
            }
        }))
        snake = codec.decode(json.dumps({
            "server_content": {
                "model_turn": {"parts": [{"inline_data": {"mime_type": "audio/pcm", "data": "AA"}}]},
                "turn_complete": True,
            }
        }))
        assert camel == snake

    def test_unknown_fields_ignored(self, codec):
        msg = codec.decode('{"serverContent": {"modelTurn": {"parts": [{"text": "x", "thought": true}]}, "extra": 1}}')
        assert msg.server_content.parts[0].text == "x"

    def test_tool_call(self, codec):
        msg = codec.decode(json.dumps({
            "toolCall": {"functionCalls": [
                {"id": "1", "name": "f", "args": {"a": 1}},
                {"id": 2, "name": "g"},
            ]}
        }))
        assert msg.is_tool_call
        first, second = msg.function_calls
        assert (first.id, first.name, first.args) == ("1", "f", {"a": 1})
        assert (second.id, second.name, second.args) == ("2", "g", {})

    def test_misc_server_fields(self, codec):
        msg = codec.decode(json.dumps({
            "setupComplete": {},
            "toolCallCancellation": {"ids": ["7"]},
            "usageMetadata": {"totalTokenCount": 12},
            "goAway": {"timeLeft": "10s"},
        }))
        assert msg.setup_complete
        assert msg.cancelled_call_ids == ["7"]
        assert msg.usage_metadata == {"totalTokenCount": 12}
        assert msg.go_away == {"timeLeft": "10s"}
        assert not msg.is_empty

    def test_transcriptions(self, codec):
        msg = codec.decode(json.dumps({
            "serverContent": {
                "inputTranscription": {"text": "hi there"},
                "outputTranscription": {"text": "hello"},
                "interrupted": True,
            }
        }))
        assert msg.server_content.input_transcription == "hi there"
        assert msg.server_content.output_transcription == "hello"
        assert msg.server_content.interrupted


class TestEncode:

    def test_client_turn_round_trip(self, codec):
        msg = ClientContentMessage(
            turns=[Content(role="user", parts=[
                Part.from_text("look at this"),
                Part(inline_data=InlineData(mime_type="image/jpeg", data="/9j/")),
            ])],
            turn_complete=False,
        )
        decoded = codec.decode(codec.encode(msg))
        assert decoded == msg
        assert decoded.turns[0].text == "look at this"

    def test_client_turn_wire_shape(self, codec):
        msg = ClientContentMessage(turns=[Content(parts=[Part.from_text("hi")])])
        wire = json.loads(codec.encode(msg))
        assert wire == {
            "clientContent": {
                "turnComplete": False,
                "turns": [{"role": "user", "parts": [{"text": "hi"}]}],
            }
        }

    def test_media_chunk(self, codec):
        msg = RealtimeInputMessage(media_chunks=[InlineData("audio/pcm;rate=16000", "AAAA")])
        wire = json.loads(codec.encode(msg))
        assert wire == {
            "realtimeInput": {"mediaChunks": [{"mimeType": "audio/pcm;rate=16000", "data": "AAAA"}]}
        }
        assert codec.decode(codec.encode(msg)) == msg

    def test_tool_response(self, codec):
        msg = ToolResponseMessage(function_responses=[
            FunctionResponse(name="f", response={"output": {}}, id="1")
        ])
        wire = json.loads(codec.encode(msg))
        assert wire == {
            "toolResponse": {"functionResponses": [
                {"id": "1", "name": "f", "response": {"output": {}}}
            ]}
        }
        assert codec.decode(codec.encode(msg)) == msg

    def test_setup(self, codec):
        msg = SetupMessage(
            model="models/m",
            response_modalities=["TEXT"],
            system_instruction="be brief",
            tools=Tools(function_declarations=[{"name": "f"}], google_search=True),
            activity_detection=ActivityDetection(silence_duration_ms=900),
        )
        setup = json.loads(codec.encode(msg))["setup"]
        assert setup["model"] == "models/m"
        assert setup["generationConfig"] == {"responseModalities": ["TEXT"]}
        assert setup["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert setup["tools"] == [{"functionDeclarations": [{"name": "f"}], "googleSearch": {}}]
        assert setup["realtimeInputConfig"] == {
            "automaticActivityDetection": {
                "disabled": False,
                "prefixPaddingMs": 20,
                "silenceDurationMs": 900,
            }
        }
        assert codec.decode(codec.encode(msg)) == msg

    def test_setup_without_tools_or_voice(self, codec):
        setup = json.loads(codec.encode(SetupMessage(model="models/m")))["setup"]
        assert "tools" not in setup
        assert "speechConfig" not in setup["generationConfig"]

    def test_setup_voice(self, codec):
        setup = json.loads(codec.encode(SetupMessage(model="models/m", voice="Puck")))["setup"]
        voice = setup["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
        assert voice == {"voiceName": "Puck"}

    def test_unknown_type(self, codec):
        with pytest.raises(TypeError):
            codec.encode(object())


def test_snake_case():
    assert snake_case("serverContent") == "server_content"
    assert snake_case("prefixPaddingMs") == "prefix_padding_ms"
    assert snake_case("text") == "text"


def test_snippet_bytes():
    assert snippet(b"abc") == "abc"
    assert snippet("x" * 10, limit=4) == "xxxx..."
