"""Unit tests for the stream keep-alive loop."""

import asyncio

import pytest

from watson_core.connection.keepalive import KeepAlive
from watson_core.connection.websocket import ConnectionState, StreamConnector, TextMessage


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubStream:
    """Minimal stream connector stand-in recording sent messages."""

    def __init__(self) -> None:
        self.url = "wss://stream.example.com/v1/recognize"
        self.sent = []
        self.last_send_time = 0.0
        self.is_active = True

    def send(self, message, queue_only: bool = False) -> None:
        self.sent.append(message)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stream():
    return StubStream()


class TestKeepAlive:
    """Tests for KeepAlive."""

    @pytest.mark.asyncio
    async def test_no_op_after_idle_interval(self, stream, clock, settings, wait_for):
        """Test that one no-op is sent per idle interval."""
        keep_alive = KeepAlive(stream, interval=20.0, clock=clock, settings=settings).start()

        await asyncio.sleep(0.05)
        assert stream.sent == []

        clock.now = 21.0
        await wait_for(lambda: len(stream.sent) == 1)
        await asyncio.sleep(0.05)

        assert stream.sent == [TextMessage('{"action": "no-op"}')]
        assert stream.last_send_time == 21.0
        assert keep_alive.sent == 1

        clock.now = 42.0
        await wait_for(lambda: len(stream.sent) == 2)

        keep_alive.stop()
        await asyncio.wait_for(keep_alive.wait(), 1.0)

    @pytest.mark.asyncio
    async def test_recent_send_postpones_no_op(self, stream, clock, settings):
        """Test that regular traffic keeps the loop quiet."""
        keep_alive = KeepAlive(stream, interval=20.0, clock=clock, settings=settings).start()

        clock.now = 30.0
        stream.last_send_time = 15.0
        await asyncio.sleep(0.05)

        assert stream.sent == []

        keep_alive.stop()
        await asyncio.wait_for(keep_alive.wait(), 1.0)

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self, stream, clock, settings):
        """Test that stop() ends the loop within a tick."""
        keep_alive = KeepAlive(stream, clock=clock, settings=settings).start()
        assert keep_alive.running is True

        keep_alive.stop()
        await asyncio.wait_for(keep_alive.wait(), 1.0)

        assert keep_alive.running is False
        assert keep_alive.connector is None

    @pytest.mark.asyncio
    async def test_loop_ends_when_stream_finishes(self, stream, clock, settings):
        """Test that a finished stream stops the keep-alive without a no-op."""
        keep_alive = KeepAlive(stream, interval=20.0, clock=clock, settings=settings).start()

        stream.is_active = False
        clock.now = 100.0
        await asyncio.wait_for(keep_alive.wait(), 1.0)

        assert stream.sent == []

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, stream, clock, settings):
        keep_alive = KeepAlive(stream, clock=clock, settings=settings)

        assert keep_alive.start() is keep_alive
        task = keep_alive._task
        keep_alive.start()

        assert keep_alive._task is task
        keep_alive.stop()
        await asyncio.wait_for(keep_alive.wait(), 1.0)

    @pytest.mark.asyncio
    async def test_interval_defaults_to_settings(self, stream, settings):
        keep_alive = KeepAlive(stream, settings=settings)

        assert keep_alive.interval == settings.keep_alive_interval
        assert keep_alive.tick_interval == settings.tick_interval

    @pytest.mark.asyncio
    async def test_keeps_real_stream_alive(self, socket_factory, fake_socket, settings, wait_for):
        """Test no-op delivery through a stream connector."""
        connector = StreamConnector(
            "wss://stream.example.com/v1/recognize",
            connect=socket_factory,
            settings=settings,
        )
        connector.send(TextMessage('{"action": "start"}'))
        await wait_for(lambda: connector.state is ConnectionState.CONNECTED)

        keep_alive = KeepAlive(connector, interval=0.05, settings=settings).start()

        await wait_for(lambda: '{"action": "no-op"}' in fake_socket.sent)

        keep_alive.stop()
        connector.close()
        await asyncio.wait_for(keep_alive.wait(), 1.0)
        assert connector.join(timeout=1.0)
