"""
live.channel — the duplex connection to the Live API.

The client only sees the ConnectionChannel surface:

    send(text)      write one text frame (TransportError on failure)
    frames()        async iterator of inbound Frames, consumed once
    close(reason)   close the connection

WebSocketChannel implements it on top of the ``websockets`` asyncio
client. Anything else providing the same surface (an in-memory fake in
tests, a proxy) can be injected through the client's channel factory.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from core.errors import TransportError

logger = logging.getLogger("live.channel")

# Keepalive ping interval (seconds)
PING_INTERVAL = 20.0
# Opening handshake timeout (seconds)
OPEN_TIMEOUT = 10.0


class FrameKind(Enum):
    TEXT = "text"
    BINARY = "binary"
    CLOSE = "close"
    PING = "ping"
    PONG = "pong"


@dataclass
class Frame:
    """One inbound frame"""
    kind: FrameKind
    data: Union[str, bytes, None] = None

    @classmethod
    def text(cls, data: str) -> 'Frame':
        return cls(FrameKind.TEXT, data)

    @classmethod
    def binary(cls, data: bytes) -> 'Frame':
        return cls(FrameKind.BINARY, data)

    @classmethod
    def close(cls, reason: str = "") -> 'Frame':
        return cls(FrameKind.CLOSE, reason)


class ConnectionChannel(ABC):
    """Duplex text channel to the server"""

    @abstractmethod
    async def send(self, text: str):
        """Send one text frame. Raises TransportError on write failure."""
        pass

    @abstractmethod
    def frames(self) -> AsyncIterator[Frame]:
        """Inbound frames. May only be iterated once."""
        pass

    @abstractmethod
    async def close(self, reason: str = ""):
        """Close the channel. Safe to call more than once."""
        pass

    @property
    def closed(self) -> bool:
        return False


ChannelFactory = Callable[[str], Awaitable[ConnectionChannel]]


class WebSocketChannel(ConnectionChannel):
    """
    ConnectionChannel over a ``websockets`` client connection.

    websockets answers pings itself and never surfaces control frames,
    so frames() only yields TEXT and BINARY frames followed by one CLOSE
    frame when the peer closes normally. An abnormal close raises
    TransportError from the iterator.
    """

    def __init__(self, websocket):
        self._websocket = websocket
        self._consumed = False
        self._closed = False

    @classmethod
    async def open(cls, url: str, open_timeout: float = OPEN_TIMEOUT) -> 'WebSocketChannel':
        """Connect to url. Raises TransportError if the handshake fails."""
        try:
            websocket = await websocket_connect(
                url,
                ping_interval=PING_INTERVAL,
                open_timeout=open_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"Failed to open connection: {e}") from e

        logger.debug("WebSocket connected")
        return cls(websocket)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str):
        if self._closed:
            raise TransportError("Channel is closed")
        try:
            await self._websocket.send(text)
        except WebSocketException as e:
            raise TransportError(f"Send failed: {e}") from e

    async def frames(self) -> AsyncIterator[Frame]:
        if self._consumed:
            raise RuntimeError("frames() can only be consumed once")
        self._consumed = True

        try:
            async for message in self._websocket:
                if isinstance(message, str):
                    yield Frame.text(message)
                else:
                    yield Frame.binary(message)
        except ConnectionClosedOK:
            pass
        except WebSocketException as e:
            raise TransportError(f"Connection lost: {e}") from e

        yield Frame.close(self._close_reason())

    def _close_reason(self) -> str:
        reason: Optional[str] = getattr(self._websocket, "close_reason", None)
        return reason or ""

    async def close(self, reason: str = ""):
        if self._closed:
            return
        self._closed = True
        try:
            await self._websocket.close(reason=reason)
        except WebSocketException as e:
            logger.debug(f"Error closing WebSocket: {e}")
