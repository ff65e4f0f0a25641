"""
live.client — Gemini Live session over one WebSocket.

One connection is shared by:

    - the receive loop (server events → callbacks, derived state)
    - the screen capture loop (periodic JPEG user turns)
    - caller sends (text turns, audio chunks, disconnect)

All writes go through a single asyncio.Lock so frames from different
tasks never interleave.

connect() is long-running: it returns only when the session ends. Run
it in its own task (see live.session.create_live_session) for a
non-blocking API.
"""

import asyncio
import base64
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.errors import (
    CapabilityUnavailableError, DecodeError, LiveError, TransportError,
    UnsupportedContentError,
)
from core.types import (
    MIME_JPEG, MIME_PCM_16K, ROLE_USER, Content, FunctionCall,
    FunctionResponse, InlineData, LiveStatus, Part,
)
from .callbacks import NO_CALLBACKS, LiveCallbacks
from .capture import (
    CaptureGeometry, ImageCaptureTask, MssScreenCapture, ScreenCapture,
    monotonic_ms,
)
from .channel import ChannelFactory, ConnectionChannel, FrameKind, WebSocketChannel
from .codec import Codec
from .config import LiveConfig
from .protocol import (
    ActivityDetection, ClientContentMessage, RealtimeInputMessage,
    ServerMessage, SetupMessage, ToolResponseMessage, Tools,
)
from .state import (
    AI_SPEAKING, CAPTURING, CONNECTED, USER_SPEAKING, SessionState, StateFlags,
)

logger = logging.getLogger("live.client")

FunctionHandler = Callable[..., Any]


class GeminiLiveClient:
    """
    Client for the Gemini Live BidiGenerateContent API.

    Usage:
        client = GeminiLiveClient(LiveConfig.from_env(), callbacks)
        task = asyncio.create_task(client.connect())
        ...
        await client.send_text_message("hello")
        ...
        await client.shutdown()

    function_handlers maps function names to callables (sync or async)
    invoked with the call's arguments. Calls without a handler are
    answered with ``{"output": <args>}``.
    """

    def __init__(
        self,
        config: LiveConfig,
        callbacks: LiveCallbacks = NO_CALLBACKS,
        *,
        channel_factory: Optional[ChannelFactory] = None,
        screen_capture: Optional[ScreenCapture] = None,
        function_handlers: Optional[Dict[str, FunctionHandler]] = None,
        codec: Optional[Codec] = None,
        clock: Callable[[], int] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.callbacks = callbacks
        self.codec = codec or Codec()
        self.function_handlers: Dict[str, FunctionHandler] = dict(function_handlers or {})

        self._channel_factory = channel_factory or WebSocketChannel.open
        self._screen_capture = screen_capture
        self._clock = clock
        self._sleep = sleep

        # State
        self.flags = StateFlags()
        self.state = SessionState.IDLE
        self.history: List[Content] = []
        self.geometry = CaptureGeometry()

        # Session management
        self._channel: Optional[ConnectionChannel] = None
        self._disconnect_requested = False
        self._send_lock = asyncio.Lock()
        self._capture_task: Optional[ImageCaptureTask] = None

    # ─── Status ─────────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self.flags.get(CONNECTED)

    @property
    def is_recording_audio(self) -> bool:
        # Audio is pushed by the caller; "recording" is the intent to send
        return self.flags.get(USER_SPEAKING)

    @property
    def is_user_speaking_intent(self) -> bool:
        return self.flags.get(USER_SPEAKING)

    @property
    def is_ai_speaking(self) -> bool:
        return self.flags.get(AI_SPEAKING)

    @property
    def is_screen_capture_active(self) -> bool:
        return self.flags.get(CAPTURING)

    def get_status(self) -> LiveStatus:
        flags = self.flags.snapshot()
        return LiveStatus(
            is_connected=flags[CONNECTED],
            is_recording_audio=flags[USER_SPEAKING],
            is_user_speaking=flags[USER_SPEAKING],
            is_ai_speaking=flags[AI_SPEAKING],
            is_capturing_screen=flags[CAPTURING],
            capture_resolution=self.geometry.capture_resolution,
            target_resolution=self.geometry.target_resolution,
        )

    def _publish_status(self):
        self.callbacks.emit("on_status_update", self.get_status())

    def _report_error(self, message: str, exc: Optional[BaseException] = None):
        logger.error(message)
        self.callbacks.emit("on_error", message, exc)

    # ─── Connection lifecycle ───────────────────────────────────────

    async def connect(self) -> bool:
        """
        Open the session and run it until it ends.

        Returns True if the session ended normally (server close or
        disconnect()), False if it failed. Calling connect() on a client
        that is already connected (or connecting) returns True at once.
        """
        if self.flags.get(CONNECTED) or self.state is SessionState.CONNECTING:
            return True

        self.state = SessionState.CONNECTING
        self._disconnect_requested = False
        try:
            channel = await self._channel_factory(self.config.websocket_url())
        except asyncio.CancelledError:
            self.state = SessionState.IDLE
            raise
        except Exception as e:
            self.state = SessionState.FAILED
            self._report_error(f"Error establishing WebSocket session: {e}", e)
            return False

        if self._disconnect_requested:
            logger.info("Disconnect requested while connecting, closing new channel")
            await self._close_channel(channel)
            self.state = SessionState.IDLE
            return True

        self._channel = channel
        self.flags.get_and_set(CONNECTED, True)
        self.state = SessionState.CONNECTED
        logger.info(f"Connected to {self.config.model}")
        self.callbacks.emit("on_connected")
        self._publish_status()

        ok = True
        try:
            self.callbacks.emit("before_setup")
            await self._send(self._build_setup_message())
            await self._receive_loop(channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ok = False
            self._report_error(f"Error during WebSocket session: {e}", e)
        finally:
            self._cleanup()
            await self._close_channel(channel)
            self.state = SessionState.IDLE if ok else SessionState.FAILED
        return ok

    async def disconnect(self):
        """Close the session. Cleanup runs at most once however it is triggered."""
        channel = self._channel
        if self.state is SessionState.CONNECTING and channel is None:
            self._disconnect_requested = True
            return
        if not self.flags.get(CONNECTED) and channel is None:
            return

        self.stop_audio_input()
        self._stop_capture()

        if channel is not None:
            try:
                await channel.close("User requested disconnect")
            except Exception as e:
                self._report_error(f"Error during disconnect attempt: {e}", e)
        self._cleanup()

    async def shutdown(self):
        """Disconnect and release everything the client started."""
        try:
            await self.disconnect()
        except Exception as e:
            self._report_error(f"Error during disconnect phase of shutdown: {e}", e)
        finally:
            task = self._capture_task
            self._capture_task = None
            if task is not None:
                await task.stop()

    def _cleanup(self) -> bool:
        """Tear down connection state. Only the first caller gets past the guard."""
        if not self.flags.get_and_set(CONNECTED, False):
            return False

        self.state = SessionState.DISCONNECTING
        self.stop_audio_input()
        self._stop_capture()
        if self.flags.compare_and_set(AI_SPEAKING, True, False):
            self.callbacks.emit("on_ai_speaking_stopped")

        self._channel = None
        logger.info("Disconnected")
        self.callbacks.emit("on_disconnected")
        self._publish_status()
        return True

    async def _close_channel(self, channel: ConnectionChannel):
        try:
            await channel.close()
        except Exception as e:
            logger.debug(f"Error closing channel: {e}")

    def _build_setup_message(self) -> SetupMessage:
        config = self.config
        return SetupMessage(
            model=config.model,
            response_modalities=[config.response_modality],
            system_instruction=config.system_instruction,
            tools=Tools(
                function_declarations=list(config.function_declarations),
                google_search=config.google_search,
                code_execution=config.code_execution,
                url_context=config.url_context,
            ),
            activity_detection=ActivityDetection(
                disabled=config.activity_detection_disabled,
                prefix_padding_ms=config.prefix_padding_ms,
                silence_duration_ms=config.activity_detection_silence_ms,
            ),
            voice=config.voice,
        )

    # ─── Sending ────────────────────────────────────────────────────

    async def _send(self, msg) -> str:
        payload = self.codec.encode(msg)
        await self._send_raw(payload)
        return payload

    async def _send_raw(self, payload: str):
        channel = self._channel
        if channel is None:
            raise TransportError("Not connected")
        async with self._send_lock:
            await channel.send(payload)

    async def send_turn_message(
        self,
        turn_complete: bool,
        parts: List[Part],
        role: str = ROLE_USER,
    ):
        """
        Send one conversation turn.

        Raises TransportError if not connected or the write fails.
        """
        await self._send(ClientContentMessage(
            turns=[Content(role=role, parts=list(parts))],
            turn_complete=turn_complete,
        ))

    async def send_text_message(self, text: str) -> bool:
        """
        Send a user text turn.

        The turn is left open (turnComplete=false); the server decides
        when the model answers.
        """
        if not self.flags.get(CONNECTED):
            self._report_error("Not connected. Cannot send text message.")
            return False
        if not text or not text.strip():
            self._report_error("Cannot send an empty text message.")
            return False

        content = Content(role=ROLE_USER, parts=[Part.from_text(text)])
        self.history.append(content)
        try:
            await self._send(ClientContentMessage(turns=[content], turn_complete=False))
        except LiveError as e:
            self._report_error(f"Failed to send text message: {e}", e)
            return False
        return True

    async def send_media_chunk(self, b64_data: str, mime_type: str) -> bool:
        """Send one base64 media chunk (normally PCM audio) as realtime input."""
        if self._channel is None or not self.flags.get(CONNECTED):
            return False
        try:
            await self._send(RealtimeInputMessage(
                media_chunks=[InlineData(mime_type=mime_type, data=b64_data)]
            ))
        except LiveError as e:
            self._report_error(f"Error sending media chunk (MIME: {mime_type}): {e}", e)
            return False
        return True

    async def send_audio(self, pcm: bytes, mime_type: str = MIME_PCM_16K) -> bool:
        return await self.send_media_chunk(base64.b64encode(pcm).decode('ascii'), mime_type)

    async def _send_image(self, b64_jpeg: str):
        await self.send_turn_message(
            False, [Part(inline_data=InlineData(mime_type=MIME_JPEG, data=b64_jpeg))]
        )

    # ─── Audio intent ───────────────────────────────────────────────

    def start_audio_input(self) -> bool:
        """
        Mark that the caller is sending audio.

        The client does not record; audio arrives via send_media_chunk().
        """
        if self.flags.compare_and_set(USER_SPEAKING, False, True):
            self.callbacks.emit("on_audio_started")
            self._publish_status()
        return True

    def stop_audio_input(self) -> bool:
        if self.flags.compare_and_set(USER_SPEAKING, True, False):
            self.callbacks.emit("on_audio_stopped")
            self._publish_status()
        return True

    # ─── Screen capture ─────────────────────────────────────────────

    @property
    def screen_capture(self) -> ScreenCapture:
        if self._screen_capture is None:
            self._screen_capture = MssScreenCapture()
        return self._screen_capture

    def start_screen_capture(self) -> bool:
        """
        Start sending screen frames every image_send_interval_ms.

        Must be called from the event loop while connected.
        """
        if not self.flags.get(CONNECTED):
            self._report_error("Not connected. Cannot start screen capture.")
            return False
        if self.flags.get(CAPTURING):
            return True

        try:
            display = self.screen_capture.bounds()
        except CapabilityUnavailableError as e:
            self._report_error(str(e), e)
            return False
        except Exception as e:
            err = CapabilityUnavailableError(f"Failed to initialize screen capture: {e}")
            self._report_error(str(err), err)
            return False

        if self.geometry.resolve(display) is None:
            err = CapabilityUnavailableError(f"Display has no usable area: {display}")
            self._report_error(str(err), err)
            return False

        if not self.flags.compare_and_set(CAPTURING, False, True):
            return True

        task = ImageCaptureTask(
            self.screen_capture,
            self.geometry,
            self._send_image,
            interval_ms=self.config.image_send_interval_ms,
            poll_ms=self.config.poll_interval_ms,
            max_dimension=self.config.max_image_dimension,
            jpeg_quality=self.config.jpeg_quality,
            is_active=self._capture_active,
            on_error=self._report_error,
            on_exit=lambda: self._on_capture_exit(task),
            clock=self._clock,
            sleep=self._sleep,
        )
        try:
            task.start()
        except RuntimeError as e:
            self.flags.get_and_set(CAPTURING, False)
            self._report_error(f"Failed to start screen capture: {e}", e)
            return False

        self._capture_task = task
        logger.info(f"Screen capture started ({self.geometry.capture_resolution})")
        self.callbacks.emit("on_screen_capture_started")
        self._publish_status()
        return True

    def stop_screen_capture(self) -> bool:
        self._stop_capture()
        return True

    def set_screen_capture_resolution(self, width: int, height: int) -> bool:
        """Set the capture size; a non-positive size means full screen."""
        self.geometry.set_target(width, height)
        logger.debug(f"Capture target set to {self.geometry.target_resolution}")
        self._publish_status()
        return True

    def _capture_active(self) -> bool:
        return self.flags.get(CAPTURING) and self.flags.get(CONNECTED)

    def _stop_capture(self):
        was_capturing = self.flags.get_and_set(CAPTURING, False)
        if self._capture_task is not None:
            self._capture_task.cancel()
        if was_capturing:
            logger.info("Screen capture stopped")
            self.callbacks.emit("on_screen_capture_stopped")
        self._publish_status()

    def _on_capture_exit(self, task: ImageCaptureTask):
        # The loop ended on its own (connection lost, error). A loop
        # replaced by a newer start must not touch the flag.
        if task is not self._capture_task:
            return
        if self.flags.compare_and_set(CAPTURING, True, False):
            logger.info("Screen capture loop ended")
            self.callbacks.emit("on_screen_capture_stopped")
            self._publish_status()

    # ─── Receiving ──────────────────────────────────────────────────

    async def _receive_loop(self, channel: ConnectionChannel):
        async for frame in channel.frames():
            if frame.kind is FrameKind.TEXT:
                await self._receive_message(frame.data)
                self.callbacks.emit("on_text_frame", frame.data)

            elif frame.kind is FrameKind.BINARY:
                try:
                    text = bytes(frame.data).decode('utf-8')
                except UnicodeDecodeError as e:
                    err = DecodeError(f"Binary frame is not UTF-8: {e}")
                    self._report_error(f"Error processing binary frame content: {e}", err)
                    continue
                await self._receive_message(text)
                self.callbacks.emit("on_binary_frame", text)

            elif frame.kind is FrameKind.CLOSE:
                logger.debug(f"Close frame received: {frame.data!r}")
                break

            elif frame.kind in (FrameKind.PING, FrameKind.PONG):
                logger.debug(f"{frame.kind.value} received")

            else:
                self._report_error(f"Received unexpected frame type: {frame.kind}")

    async def _receive_message(self, text: Optional[str]):
        try:
            msg = self.codec.decode(text)
        except DecodeError as e:
            self._report_error(
                f"Error parsing received message: {e}. Snippet: {e.snippet}", e
            )
            return

        if not isinstance(msg, ServerMessage):
            logger.debug(f"Ignoring client message echoed by server: {type(msg).__name__}")
            return
        if msg.is_empty:
            return

        await self._route(msg)

    async def _route(self, msg: ServerMessage):
        if msg.setup_complete:
            logger.info("Session configured (setupComplete)")

        has_audio = msg.has_audio
        if has_audio and self.flags.compare_and_set(AI_SPEAKING, False, True):
            self.callbacks.emit("on_ai_speaking_started")
            self._publish_status()

        content = msg.server_content
        if content is not None:
            for part in content.parts:
                if part.text and part.text.strip():
                    self.callbacks.emit("on_text_received", part.text)

                inline = part.inline_data
                if inline is None:
                    continue
                if inline.is_audio:
                    if inline.data:
                        self.callbacks.emit("on_audio_chunk", inline.data)
                else:
                    err = UnsupportedContentError(
                        f"Received unsupported inline data type: {inline.mime_type}",
                        inline.mime_type,
                    )
                    self._report_error(str(err), err)

            if content.input_transcription:
                self.callbacks.emit("on_transcription", "input", content.input_transcription)
            if content.output_transcription:
                self.callbacks.emit("on_transcription", "output", content.output_transcription)

        # No explicit end-of-speech signal exists: a message without
        # audio is taken to mean the model has stopped talking.
        if not has_audio and self.flags.compare_and_set(AI_SPEAKING, True, False):
            self.callbacks.emit("on_ai_speaking_stopped")
            self._publish_status()

        if content is not None:
            if content.interrupted:
                self.callbacks.emit("on_interrupted")
            if content.turn_complete:
                self.callbacks.emit("on_turn_complete")

        if msg.cancelled_call_ids is not None:
            logger.info(f"Tool calls cancelled: {msg.cancelled_call_ids}")
            self.callbacks.emit("on_tool_call_cancellation", list(msg.cancelled_call_ids))

        if msg.function_calls is not None:
            await self._handle_tool_call(msg.function_calls)

        if msg.go_away is not None:
            time_left = msg.go_away.get("timeLeft", msg.go_away.get("time_left"))
            logger.warning(f"Server will close the session (time left: {time_left})")
            self.callbacks.emit("on_go_away", time_left)

    # ─── Tool calls ─────────────────────────────────────────────────

    async def _handle_tool_call(self, calls: List[FunctionCall]):
        """Answer function calls and send the results back"""
        if not calls:
            return

        logger.info(f"Function call received: {', '.join(c.name for c in calls)}")
        self.callbacks.emit("on_function_call_received", list(calls))

        if self.config.respond_to_all_function_calls:
            selected = calls
        else:
            selected = calls[:1]

        responses = []
        for call in selected:
            result = await self._call_function(call)
            responses.append(FunctionResponse(name=call.name, response=result, id=call.id))

        payload = self.codec.encode(ToolResponseMessage(function_responses=responses))
        self.callbacks.emit("on_send_function_response", payload)
        try:
            await self._send_raw(payload)
        except LiveError as e:
            self._report_error(f"Error sending tool response: {e}", e)
            return
        self.callbacks.emit("after_function_response_sent")
        self.callbacks.emit("on_request_received_completely")

    async def _call_function(self, call: FunctionCall) -> Dict[str, Any]:
        handler = self.function_handlers.get(call.name)
        if handler is None:
            return {"output": call.args}

        try:
            if inspect.iscoroutinefunction(handler):
                result = await handler(**call.args)
            else:
                result = await asyncio.to_thread(handler, **call.args)
        except Exception as e:
            logger.warning(f"Function {call.name} failed: {e}")
            return {"result": "error", "message": str(e)}

        if isinstance(result, dict):
            return result
        return {"output": result}
