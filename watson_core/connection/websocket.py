"""
Stream Connector
================

Full-duplex WebSocket connector used for live speech recognition.

Socket I/O runs on a dedicated worker thread. Two lock-protected queues
bridge that thread and the asyncio event loop of the caller: the worker
drains the outbound queue onto the socket and fills the inbound queue from
it, while a dispatcher task on the event loop drains the inbound queue into
``on_message`` once per tick.

Author: Platform Engineering Team
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple, Union

import structlog
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.sync.client import connect as ws_connect

from watson_core.config.credentials import Credentials
from watson_core.config.settings import ConnectionSettings, get_settings

logger = structlog.get_logger(__name__)

_worker_ids = itertools.count(1)


class ConnectionState(str, Enum):
    """Lifecycle states of a stream connector."""

    IDLE = "idle"  # Created, no connection attempted yet
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"  # Lost connection or failed to connect
    CLOSED = "closed"  # Closed by us or cleanly by the peer


_ACTIVE_STATES = frozenset({
    ConnectionState.IDLE,
    ConnectionState.CONNECTING,
    ConnectionState.CONNECTED,
})

_TERMINAL_STATES = frozenset({
    ConnectionState.DISCONNECTED,
    ConnectionState.CLOSED,
})

_TRANSITIONS = {
    ConnectionState.IDLE: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.CLOSED, ConnectionState.DISCONNECTED}),
    ConnectionState.DISCONNECTED: frozenset(),
    ConnectionState.CLOSED: frozenset(),
}


class Message:
    """Base class for messages sent or received on a stream."""


@dataclass(frozen=True)
class TextMessage(Message):
    """Text frame payload (JSON control messages, results)."""

    text: str


@dataclass(frozen=True)
class BinaryMessage(Message):
    """Binary frame payload (raw audio)."""

    data: bytes


MessageHandler = Callable[[Message], Optional[Awaitable[None]]]
CloseHandler = Callable[["StreamConnector"], Optional[Awaitable[None]]]
SocketFactory = Callable[..., Any]


def fixup_url(url: str) -> str:
    """Rewrite an http(s) URL into the matching ws(s) URL."""
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    return url


class StreamConnector:
    """
    WebSocket connector for one streaming session.

    No connection is opened until the first ``send`` that is not
    ``queue_only``, so callers can stage initial control messages first.
    There is no automatic reconnect: once the connector is DISCONNECTED or
    CLOSED a new connector is needed.

    Args:
        url: WebSocket URL
        headers: Extra handshake headers
        credentials: Credentials used for the Authorization header
        on_message: Called on the event loop for every inbound message
        on_close: Called on the event loop once the session has ended
        connect: Socket factory, ``websockets.sync.client.connect`` by default
        tick_interval: Seconds between dispatcher ticks
        poll_interval: Longest time the worker waits before polling the socket
        open_timeout: Handshake timeout in seconds
        settings: Settings used for any value not given explicitly

    Example:
        >>> connector = StreamConnector("wss://stream.example.com/v1/recognize")
        >>> connector.on_message = handle_message
        >>> connector.send(TextMessage('{"action": "start"}'))
    """

    def __init__(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        credentials: Optional[Credentials] = None,
        on_message: Optional[MessageHandler] = None,
        on_close: Optional[CloseHandler] = None,
        connect: Optional[SocketFactory] = None,
        tick_interval: Optional[float] = None,
        poll_interval: Optional[float] = None,
        open_timeout: Optional[float] = None,
        settings: Optional[ConnectionSettings] = None,
    ) -> None:
        settings = settings or get_settings()

        self.url = url
        self.headers = dict(headers or {})
        self.credentials = credentials
        self.on_message = on_message
        self.on_close = on_close

        self.tick_interval = tick_interval if tick_interval is not None else settings.tick_interval
        self.poll_interval = poll_interval if poll_interval is not None else settings.socket_poll_interval
        self.open_timeout = open_timeout if open_timeout is not None else settings.open_timeout
        self._connect = connect or ws_connect

        self._state = ConnectionState.IDLE
        self._state_lock = threading.Lock()
        self._history: List[ConnectionState] = [ConnectionState.IDLE]
        self._close_requested = False

        self._send_queue: Deque[Message] = deque()
        self._send_lock = threading.Lock()
        self._send_event = threading.Event()

        self._receive_queue: Deque[Message] = deque()
        self._receive_lock = threading.Lock()
        self._receive_event = threading.Event()

        self._worker: Optional[threading.Thread] = None
        self._dispatcher: Optional[asyncio.Task] = None

        self.last_send_time = time.monotonic()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def state_history(self) -> Tuple[ConnectionState, ...]:
        """Every state this connector has been in, oldest first."""
        return tuple(self._history)

    @property
    def is_active(self) -> bool:
        return self._state in _ACTIVE_STATES

    def _transition(self, new_state: ConnectionState) -> bool:
        with self._state_lock:
            old_state = self._state
            if new_state not in _TRANSITIONS[old_state]:
                logger.debug(
                    "Ignoring stream state transition",
                    url=self.url,
                    from_state=old_state.value,
                    to_state=new_state.value,
                )
                return False
            self._state = new_state
            self._history.append(new_state)

        logger.debug(
            "Stream state changed",
            url=self.url,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        return True

    # -------------------------------------------------------------------------
    # Caller side
    # -------------------------------------------------------------------------

    def send(self, message: Message, queue_only: bool = False) -> None:
        """
        Queue a message for the socket.

        Must be called from the thread running the event loop; it never
        blocks on the network.

        Args:
            message: TextMessage or BinaryMessage
            queue_only: Only queue the message; do not wake the worker or
                open the connection
        """
        if not isinstance(message, (TextMessage, BinaryMessage)):
            raise TypeError(f"Expected TextMessage or BinaryMessage, got {type(message).__name__}")

        if self._state in _TERMINAL_STATES:
            logger.warning(
                "Dropping message for finished stream",
                url=self.url,
                state=self._state.value,
            )
            return

        with self._send_lock:
            self._send_queue.append(message)
            if not queue_only:
                self._send_event.set()
        self.last_send_time = time.monotonic()

        if not queue_only and self._worker is None:
            if self._transition(ConnectionState.CONNECTING):
                self._worker = threading.Thread(
                    target=self._run,
                    name=f"stream-connector-{next(_worker_ids)}",
                    daemon=True,
                )
                self._worker.start()

        # Staged messages alone do not need a dispatcher; close() starts one
        if self._worker is not None:
            self._ensure_dispatcher()

    def close(self) -> None:
        """
        Close the stream.

        Does not wait for the socket to close; the worker thread closes it
        before exiting and ``on_close`` runs on the next dispatcher tick.
        """
        self._close_requested = True
        if self._state is not ConnectionState.CONNECTING:
            # While connecting the worker completes the close once the
            # handshake has settled.
            self._transition(ConnectionState.CLOSED)
        self._send_event.set()

        try:
            self._ensure_dispatcher()
        except RuntimeError:
            logger.debug("No running event loop; close notification not scheduled", url=self.url)

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the worker thread to exit.

        Returns:
            True if no worker is running any more
        """
        if self._worker is None:
            return True
        self._worker.join(timeout)
        return not self._worker.is_alive()

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None:
            loop = asyncio.get_running_loop()
            self._dispatcher = loop.create_task(self._process_receive_queue())

    async def _process_receive_queue(self) -> None:
        """Deliver inbound messages on the event loop, one step per tick."""
        while self._state in _ACTIVE_STATES:
            await asyncio.sleep(self.tick_interval)

            # zero-wait poll so an idle tick does not touch the queue lock
            if self._receive_event.is_set():
                self._receive_event.clear()
                await self._drain_receive_queue()

        await self._drain_receive_queue()
        await self._notify_close()

    async def _drain_receive_queue(self) -> None:
        with self._receive_lock:
            messages = list(self._receive_queue)
            self._receive_queue.clear()

        for message in messages:
            if self.on_message is None:
                continue
            try:
                result = self.on_message(message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("Error in stream message handler", url=self.url, error=str(e))

    async def _notify_close(self) -> None:
        logger.info("Stream finished", url=self.url, state=self._state.value)
        if self.on_close is None:
            return
        try:
            result = self.on_close(self)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error("Error in stream close handler", url=self.url, error=str(e))

    # -------------------------------------------------------------------------
    # Worker thread
    # -------------------------------------------------------------------------

    def _handshake_headers(self) -> Dict[str, str]:
        headers = dict(self.headers)
        if self.credentials is not None:
            headers.update(self.credentials.auth_headers())
        return headers

    def _run(self) -> None:
        try:
            ws = self._connect(
                self.url,
                additional_headers=self._handshake_headers() or None,
                open_timeout=self.open_timeout,
            )
        except Exception as e:
            logger.warning("Stream connection failed", url=self.url, error=str(e))
            self._transition(ConnectionState.DISCONNECTED)
            return

        self._transition(ConnectionState.CONNECTED)
        logger.info("Stream connected", url=self.url)
        if self._close_requested:
            self._transition(ConnectionState.CLOSED)

        try:
            while self._state is ConnectionState.CONNECTED:
                self._send_event.wait(self.poll_interval)
                self._send_event.clear()
                self._flush_send_queue(ws)
                self._pump_socket(ws)
        except ConnectionClosedOK:
            logger.info("Stream closed by server", url=self.url)
            self._transition(ConnectionState.CLOSED)
        except ConnectionClosed as e:
            logger.warning("Stream connection lost", url=self.url, error=str(e))
            self._transition(ConnectionState.DISCONNECTED)
        except Exception as e:
            logger.warning("Stream socket error", url=self.url, error=str(e))
            self._transition(ConnectionState.DISCONNECTED)
        finally:
            try:
                ws.close()
            except Exception as e:
                logger.debug("Error closing stream socket", url=self.url, error=str(e))

    def _flush_send_queue(self, ws: Any) -> None:
        while self._state is ConnectionState.CONNECTED:
            with self._send_lock:
                if not self._send_queue:
                    return
                message = self._send_queue.popleft()

            if isinstance(message, TextMessage):
                ws.send(message.text)
            else:
                ws.send(bytes(message.data))

    def _pump_socket(self, ws: Any) -> None:
        while True:
            try:
                raw = ws.recv(timeout=0)
            except TimeoutError:
                return
            self._on_socket_message(raw)

    def _on_socket_message(self, raw: Union[str, bytes]) -> None:
        if isinstance(raw, str):
            message: Message = TextMessage(raw)
        else:
            message = BinaryMessage(bytes(raw))

        with self._receive_lock:
            self._receive_queue.append(message)
        self._receive_event.set()

    def __repr__(self) -> str:
        return f"StreamConnector(url='{self.url}', state={self._state.value})"
