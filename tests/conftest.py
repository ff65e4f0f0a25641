import asyncio
import json
from typing import List

import PIL.Image
import pytest

from core.errors import TransportError
from core.types import Rect
from live.callbacks import LiveCallbacks
from live.capture import ScreenCapture
from live.channel import ConnectionChannel, Frame, FrameKind
from live.client import GeminiLiveClient
from live.config import LiveConfig


async def eventually(condition, timeout: float = 2.0):
    """Poll until condition() is true, failing after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


class FakeChannel(ConnectionChannel):
    """In-memory channel: tests push inbound frames, outbound text is recorded."""

    def __init__(self):
        self.sent: List[str] = []
        self.close_calls = 0
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str):
        if self._closed:
            raise TransportError("channel closed")
        self.sent.append(text)

    async def frames(self):
        while True:
            item = await self._inbound.get()
            if isinstance(item, Exception):
                raise item
            yield item
            if item.kind is FrameKind.CLOSE:
                return

    async def close(self, reason: str = ""):
        self.close_calls += 1
        if not self._closed:
            self._closed = True
            self._inbound.put_nowait(Frame.close(reason))

    def push(self, frame: Frame):
        self._inbound.put_nowait(frame)

    def push_json(self, obj):
        self.push(Frame.text(json.dumps(obj)))

    def fail(self, exc: Exception):
        self._inbound.put_nowait(exc)

    def sent_json(self) -> list:
        return [json.loads(s) for s in self.sent]

    def sent_with(self, key: str) -> list:
        return [m[key] for m in self.sent_json() if key in m]


class FakeConnector:
    """Channel factory handing out one FakeChannel"""

    def __init__(self, channel: FakeChannel):
        self.channel = channel
        self.opened: List[str] = []

    async def __call__(self, url: str) -> FakeChannel:
        self.opened.append(url)
        return self.channel


class FakeScreen(ScreenCapture):
    def __init__(self, width: int = 640, height: int = 480, fail_grabs: int = 0):
        self.display = Rect(0, 0, width, height)
        self.grabs: List[Rect] = []
        self.fail_grabs = fail_grabs

    def bounds(self) -> Rect:
        return self.display

    def grab(self, rect: Rect) -> PIL.Image.Image:
        self.grabs.append(rect)
        if self.fail_grabs > 0:
            self.fail_grabs -= 1
            raise OSError("grab failed")
        return PIL.Image.new("RGB", (rect.width, rect.height), (30, 120, 200))


class ManualClock:
    """
    Millisecond clock advanced by the test.

    sleep() parks the caller until the clock reaches its wake-up time.
    advance() wakes due sleepers and waits for them to park again, so
    work a woken task does in threads has finished before time moves on.
    """

    def __init__(self):
        self.now = 0
        self._sleepers = []

    def __call__(self) -> int:
        return self.now

    @property
    def pending(self) -> int:
        return len(self._sleepers)

    async def sleep(self, delay: float):
        fut = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + round(delay * 1000), fut))
        try:
            await fut
        finally:
            self._sleepers = [s for s in self._sleepers if s[1] is not fut]

    async def advance(self, ms: int, step: int = 100):
        target = self.now + ms
        while self.now < target:
            self.now = min(target, self.now + step)
            due = [s for s in self._sleepers if s[0] <= self.now]
            if not due:
                continue
            self._sleepers = [s for s in self._sleepers if s[0] > self.now]
            expected = len(self._sleepers) + len(due)
            for _, fut in due:
                if not fut.done():
                    fut.set_result(None)
            await eventually(lambda: self.pending >= expected, timeout=5.0)


class Recorder:
    """Records every callback invocation as (name, args)"""

    def __init__(self):
        self.events = []

    def callbacks(self, **overrides) -> LiveCallbacks:
        hooks = {name: self._hook(name) for name in LiveCallbacks.hook_names()}
        hooks.update(overrides)
        return LiveCallbacks(**hooks)

    def _hook(self, name):
        def hook(*args):
            self.events.append((name, args))
        return hook

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.events if n == name)

    def calls(self, name: str) -> list:
        return [args for n, args in self.events if n == name]

    def errors(self) -> list:
        return self.calls("on_error")


async def start_session(client: GeminiLiveClient, channel: FakeChannel) -> asyncio.Task:
    """Run connect() in a task and wait until the setup message is out."""
    task = asyncio.create_task(client.connect())
    await eventually(lambda: client.is_connected and len(channel.sent) >= 1)
    return task


async def end_session(client: GeminiLiveClient, task: asyncio.Task) -> bool:
    await client.shutdown()
    return await asyncio.wait_for(task, timeout=2.0)


@pytest.fixture
def config():
    return LiveConfig(api_key="test-key")


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def connector(channel):
    return FakeConnector(channel)


@pytest.fixture
def screen():
    return FakeScreen()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def client(config, recorder, connector, screen):
    return GeminiLiveClient(
        config,
        recorder.callbacks(),
        channel_factory=connector,
        screen_capture=screen,
    )
