"""
Session facade: run a client's connect() in the background.

create_live_session() returns immediately. Whatever ends the background
task (normal close, failure, cancellation, even mid-connect) the client
is shut down from a shielded finaliser, so cleanup cannot be skipped by
the very cancellation that triggered it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .callbacks import NO_CALLBACKS, LiveCallbacks
from .client import GeminiLiveClient
from .config import LiveConfig

logger = logging.getLogger("live.session")


@dataclass
class LiveSession:
    """Handle on a running session: the client and its connect task"""
    client: GeminiLiveClient
    task: asyncio.Task

    @property
    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> bool:
        return self.task.cancel()

    async def wait(self) -> bool:
        """
        Wait for the session to end.

        Returns connect()'s result, or False if the task was cancelled.
        """
        try:
            return await self.task
        except asyncio.CancelledError:
            if self.task.cancelled():
                return False
            raise


async def _run_session(client: GeminiLiveClient) -> bool:
    try:
        return await client.connect()
    finally:
        finaliser = asyncio.ensure_future(client.shutdown())
        try:
            await asyncio.shield(finaliser)
        except asyncio.CancelledError:
            # Cancelled again while shutting down: let the shutdown finish
            # before propagating.
            await finaliser
            raise
        logger.debug("Session finished")


def create_live_session(
    config: LiveConfig,
    callbacks: LiveCallbacks = NO_CALLBACKS,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    **client_kwargs,
) -> LiveSession:
    """
    Construct a client and start connect() as a background task.

    Extra keyword arguments go to GeminiLiveClient (channel_factory,
    screen_capture, function_handlers, ...).
    """
    client = GeminiLiveClient(config, callbacks, **client_kwargs)
    loop = loop or asyncio.get_running_loop()
    task = loop.create_task(_run_session(client), name="live-session")
    return LiveSession(client=client, task=task)
