"""
Microphone and speaker for interactive sessions.

The client never records or plays audio itself. AudioIO bridges a
PyAudio device pair to it:

    stream_microphone(client)   mic PCM → client.send_audio() while the
                                client's audio intent is on
    play(b64)                   on_audio_chunk callback: queue model audio
    flush()                     on_interrupted callback: drop queued audio
    play_output()               drain the queue to the speaker
"""

import asyncio
import base64
import logging
from typing import Optional

from core.errors import CapabilityUnavailableError

try:
    import pyaudio
    AUDIO_AVAILABLE = True
except ImportError:
    AUDIO_AVAILABLE = False

logger = logging.getLogger("live.audio")

# Audio configuration
if AUDIO_AVAILABLE:
    FORMAT = pyaudio.paInt16
else:
    FORMAT = 8  # paInt16 value as fallback
CHANNELS = 1
SEND_SAMPLE_RATE = 16000
RECEIVE_SAMPLE_RATE = 24000
CHUNK_SIZE = 1024
MAX_QUEUED_CHUNKS = 200


class AudioIO:
    """PyAudio microphone + speaker pair"""

    def __init__(
        self,
        input_device: Optional[int] = None,
        output_device: Optional[int] = None,
        max_queued: int = MAX_QUEUED_CHUNKS,
    ):
        self.input_device = input_device
        self.output_device = output_device
        self.mute = False
        self._pya = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queued)
        self.chunks_played = 0
        self.chunks_dropped = 0

    @property
    def is_open(self) -> bool:
        return self._pya is not None

    def open(self):
        if not AUDIO_AVAILABLE:
            raise CapabilityUnavailableError("pyaudio not installed")
        if self._pya is None:
            self._pya = pyaudio.PyAudio()

    def close(self):
        if self._pya is not None:
            try:
                self._pya.terminate()
            except OSError as e:
                logger.debug(f"Error terminating PyAudio: {e}")
            self._pya = None

    # ─── Output ─────────────────────────────────────────────────────

    def play(self, b64_data: str):
        """Queue one base64 PCM chunk for playback. The oldest chunk is dropped when full."""
        chunk = base64.b64decode(b64_data)
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(chunk)
            self.chunks_dropped += 1
            if self.chunks_dropped % 100 == 1:
                logger.warning(f"Playback queue full, dropped {self.chunks_dropped} audio chunks")

    def flush(self) -> int:
        """Drop everything not yet played. Returns the number of chunks dropped."""
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        return dropped

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def play_output(self):
        """Play queued audio until cancelled"""
        self.open()
        if self.output_device is not None:
            out_info = self._pya.get_device_info_by_index(self.output_device)
        else:
            out_info = self._pya.get_default_output_device_info()
        logger.info(f"Using output: {out_info['name']}")

        stream = await asyncio.to_thread(
            self._pya.open,
            format=FORMAT,
            channels=CHANNELS,
            rate=RECEIVE_SAMPLE_RATE,
            output=True,
            output_device_index=out_info["index"],
        )
        try:
            while True:
                chunk = await self._queue.get()
                if self.mute or not chunk:
                    continue
                await asyncio.to_thread(stream.write, chunk)
                self.chunks_played += 1
                if self.chunks_played % 100 == 0:
                    logger.debug(f"Played {self.chunks_played} audio chunks")
        finally:
            stream.close()

    # ─── Input ──────────────────────────────────────────────────────

    async def stream_microphone(self, client):
        """
        Read the microphone and forward it to client.

        Chunks are read continuously and dropped while the client's audio
        intent is off, so toggling start/stop_audio_input has no latency.
        Runs until the client disconnects or the task is cancelled.
        """
        self.open()
        if self.input_device is not None:
            mic_info = self._pya.get_device_info_by_index(self.input_device)
        else:
            mic_info = self._pya.get_default_input_device_info()
        logger.info(f"Using mic: {mic_info['name']}")

        try:
            self._pya.is_format_supported(
                SEND_SAMPLE_RATE,
                input_device=mic_info["index"],
                input_channels=CHANNELS,
                input_format=FORMAT,
            )
        except ValueError as e:
            raise CapabilityUnavailableError(
                f"Microphone does not support {SEND_SAMPLE_RATE}Hz mono PCM: {e}"
            ) from e

        stream = await asyncio.to_thread(
            self._pya.open,
            format=FORMAT,
            channels=CHANNELS,
            rate=SEND_SAMPLE_RATE,
            input=True,
            input_device_index=mic_info["index"],
            frames_per_buffer=CHUNK_SIZE,
        )
        mime_type = f"audio/pcm;rate={SEND_SAMPLE_RATE}"
        try:
            while client.is_connected:
                data = await asyncio.to_thread(
                    stream.read, CHUNK_SIZE, exception_on_overflow=False
                )
                if data and client.is_recording_audio:
                    await client.send_audio(data, mime_type)
        finally:
            stream.close()
