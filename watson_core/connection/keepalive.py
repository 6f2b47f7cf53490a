"""
Stream keep-alive.

Sends a no-op control message whenever a stream has been idle for longer
than the keep-alive interval, so intermediaries do not drop silent sessions.
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from watson_core.config.settings import ConnectionSettings, get_settings
from watson_core.connection.control import NoOpMessage
from watson_core.connection.websocket import StreamConnector

logger = structlog.get_logger(__name__)


class KeepAlive:
    """
    Cooperative keep-alive loop for one stream connector.

    The loop checks once per tick and ends when ``stop()`` clears the
    connector reference or the connector has finished.

    Args:
        connector: Stream to keep alive
        interval: Idle seconds before a no-op message is sent
        tick_interval: Seconds between checks
        clock: Monotonic clock, must match ``connector.last_send_time``
    """

    def __init__(
        self,
        connector: StreamConnector,
        interval: Optional[float] = None,
        tick_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        settings: Optional[ConnectionSettings] = None,
    ) -> None:
        settings = settings or get_settings()

        self.connector: Optional[StreamConnector] = connector
        self.interval = interval if interval is not None else settings.keep_alive_interval
        self.tick_interval = tick_interval if tick_interval is not None else settings.tick_interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.sent = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "KeepAlive":
        """Schedule the loop on the running event loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def stop(self) -> None:
        """Drop the connector; the loop exits on its next tick."""
        self.connector = None

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while self.connector is not None:
            await asyncio.sleep(self.tick_interval)

            connector = self.connector
            if connector is None:
                break
            if not connector.is_active:
                logger.debug("Keep-alive stopping, stream finished", url=connector.url)
                break

            if self._clock() > connector.last_send_time + self.interval:
                connector.send(NoOpMessage().to_message())
                # send() stamps last_send_time with the real clock
                connector.last_send_time = self._clock()
                self.sent += 1
                logger.debug("Keep-alive sent", url=connector.url)
