"""
live.capture — periodic screen capture for a live session.

    ScreenCapture        capability: display bounds + grab a region
    MssScreenCapture     ScreenCapture backed by mss
    CaptureGeometry      target resolution → centred capture rectangle
    ImageCaptureTask     cancellable loop: grab, shrink, JPEG, send

The loop ticks at most once a second even when the send interval is
longer, so stop requests and resolution changes are picked up quickly.
Frames are sent as user turns with turnComplete=false by the owner's
send callback; this module never touches the connection itself.
"""

import asyncio
import base64
import io
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import mss
import PIL.Image

from core.errors import CapabilityUnavailableError
from core.types import FULL_SCREEN, Rect

logger = logging.getLogger("live.capture")


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


# ─── Capability ────────────────────────────────────────────────────


class ScreenCapture(ABC):
    """Source of screen images"""

    @abstractmethod
    def bounds(self) -> Rect:
        """
        Bounds of the display to capture.

        Raises CapabilityUnavailableError when there is no display.
        """
        pass

    @abstractmethod
    def grab(self, rect: Rect) -> PIL.Image.Image:
        """Capture ``rect``. Called from a worker thread."""
        pass


class MssScreenCapture(ScreenCapture):
    """
    Screen capture through mss.

    A fresh mss context is opened per call: mss handles are bound to the
    thread that created them and grab() runs on worker threads.
    """

    def __init__(self, monitor: int = 1):
        self.monitor = monitor

    def bounds(self) -> Rect:
        try:
            with mss.mss() as sct:
                monitors = sct.monitors
                mon = monitors[self.monitor] if self.monitor < len(monitors) else monitors[0]
        except mss.exception.ScreenShotError as e:
            raise CapabilityUnavailableError(f"Screen capture unavailable: {e}") from e
        return Rect(mon["left"], mon["top"], mon["width"], mon["height"])

    def grab(self, rect: Rect) -> PIL.Image.Image:
        region = {"left": rect.x, "top": rect.y, "width": rect.width, "height": rect.height}
        with mss.mss() as sct:
            shot = sct.grab(region)
        return PIL.Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")


# ─── Geometry ──────────────────────────────────────────────────────


class CaptureGeometry:
    """
    Resolves a target resolution against the display bounds.

    A target of FULL_SCREEN (or any non-positive size) captures the
    whole display; otherwise the target is clamped to the display and
    centred on it. Safe to update from any thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._target_w = FULL_SCREEN
        self._target_h = FULL_SCREEN
        self._display: Optional[Rect] = None
        self._rect: Optional[Rect] = None

    @property
    def rect(self) -> Optional[Rect]:
        with self._lock:
            return self._rect

    @property
    def display(self) -> Optional[Rect]:
        with self._lock:
            return self._display

    @property
    def target_resolution(self) -> str:
        with self._lock:
            if self._target_w <= 0 or self._target_h <= 0:
                return "Full Screen"
            return f"{self._target_w}x{self._target_h}"

    @property
    def capture_resolution(self) -> str:
        rect = self.rect
        return str(rect) if rect is not None else "N/A"

    def set_target(self, width: int, height: int) -> Optional[Rect]:
        """Set the target size; recompute the rectangle if bounds are known."""
        with self._lock:
            self._target_w = width if width > 0 else FULL_SCREEN
            self._target_h = height if height > 0 else FULL_SCREEN
            if self._display is not None:
                self._rect = self._compute()
            return self._rect

    def resolve(self, display: Rect) -> Optional[Rect]:
        """Record display bounds and recompute. Returns None for an empty display."""
        with self._lock:
            if display.is_empty:
                return None
            self._display = display
            self._rect = self._compute()
            return self._rect

    def _compute(self) -> Rect:
        d = self._display
        if self._target_w <= 0 or self._target_h <= 0:
            return Rect(d.x, d.y, d.width, d.height)
        w = min(self._target_w, d.width)
        h = min(self._target_h, d.height)
        return Rect(
            d.x + max(0, (d.width - w) // 2),
            d.y + max(0, (d.height - h) // 2),
            w,
            h,
        )


# ─── Image pipeline ────────────────────────────────────────────────


def scale_image_if_needed(image: PIL.Image.Image, max_dimension: int) -> PIL.Image.Image:
    """
    Shrink image so neither side exceeds max_dimension.

    Keeps the aspect ratio and uses bilinear resampling. Returns the
    input unchanged when it already fits.
    """
    if image.width <= max_dimension and image.height <= max_dimension:
        return image
    if image.width > image.height:
        size = (max_dimension, max(1, image.height * max_dimension // image.width))
    else:
        size = (max(1, image.width * max_dimension // image.height), max_dimension)
    return image.resize(size, PIL.Image.Resampling.BILINEAR)


def encode_jpeg(image: PIL.Image.Image, quality: int = 75) -> bytes:
    if image.mode != "RGB":
        image = image.convert("RGB")
    image_io = io.BytesIO()
    image.save(image_io, format="jpeg", quality=quality)
    return image_io.getvalue()


def encode_frame(image: PIL.Image.Image, max_dimension: int, quality: int) -> str:
    """Scale, JPEG-compress and base64-encode a captured frame"""
    scaled = scale_image_if_needed(image, max_dimension)
    try:
        return base64.b64encode(encode_jpeg(scaled, quality)).decode('ascii')
    finally:
        if scaled is not image:
            scaled.close()


# ─── Capture loop ──────────────────────────────────────────────────


class ImageCaptureTask:
    """
    Background loop sending a screen frame every ``interval_ms``.

    The owner supplies:
        is_active()         loop condition (capturing and connected)
        send_image(b64)     sends one JPEG frame
        on_error(msg, exc)  non-fatal failures
        on_exit()           called exactly once when the loop ends, for
                            any reason including cancellation

    The first frame goes out one full interval after start().
    """

    def __init__(
        self,
        capture: ScreenCapture,
        geometry: CaptureGeometry,
        send_image: Callable[[str], Awaitable[None]],
        *,
        interval_ms: int,
        poll_ms: int,
        max_dimension: int,
        jpeg_quality: int,
        is_active: Callable[[], bool],
        on_error: Callable[[str, Optional[BaseException]], None],
        on_exit: Callable[[], None],
        clock: Callable[[], int] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.capture = capture
        self.geometry = geometry
        self._send_image = send_image
        self.interval_ms = interval_ms
        self.poll_ms = poll_ms
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self._is_active = is_active
        self._on_error = on_error
        self._on_exit = on_exit
        self._clock = clock
        self._sleep = sleep

        self._task: Optional[asyncio.Task] = None
        self.frames_sent = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="screen-capture"
        )
        return self._task

    def cancel(self):
        """Request the loop to stop without waiting for it."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self):
        """Cancel the loop and wait until it has exited."""
        task = self._task
        self.cancel()
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self):
        last_send = self._clock()
        try:
            while self._is_active():
                rect = self.geometry.rect
                if rect is None or rect.is_empty:
                    await self._sleep(self.poll_ms / 1000)
                    continue

                if self._clock() - last_send >= self.interval_ms:
                    if await self._capture_and_send(rect):
                        last_send = self._clock()

                await self._sleep(self.poll_ms / 1000)
        except asyncio.CancelledError:
            logger.debug("Screen capture cancelled")
            raise
        except Exception as e:
            self._on_error(f"Error in screen capture loop: {e}", e)
        finally:
            self._on_exit()

    async def _capture_and_send(self, rect: Rect) -> bool:
        """Returns False if nothing could be captured (retry next tick)."""
        try:
            image = await asyncio.to_thread(self.capture.grab, rect)
        except Exception as e:
            self._on_error(f"Error capturing screen: {e}", e)
            return False

        try:
            frame = await asyncio.to_thread(
                encode_frame, image, self.max_dimension, self.jpeg_quality
            )
            await self._send_image(frame)
            self.frames_sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._on_error(f"Error processing/sending image: {e}", e)
        finally:
            image.close()
        return True
