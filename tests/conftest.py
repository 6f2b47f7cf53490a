"""Shared pytest fixtures for testing."""

import asyncio
import queue
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

import pytest

from watson_core.config.credentials import Credentials, StaticCredentialProvider
from watson_core.config.settings import ConnectionSettings


# =============================================================================
# Socket Fakes
# =============================================================================


class FakeSocket:
    """In-memory stand-in for a synchronous websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[Any] = []
        self.incoming: "queue.Queue[Any]" = queue.Queue()
        self.closed = threading.Event()
        self.send_error: Optional[BaseException] = None

    def send(self, data: Any) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    def recv(self, timeout: Optional[float] = None) -> Any:
        try:
            item = self.incoming.get(timeout=timeout) if timeout else self.incoming.get_nowait()
        except queue.Empty:
            raise TimeoutError
        if isinstance(item, BaseException):
            raise item
        return item

    def push(self, item: Any) -> None:
        """Queue a frame (or an exception) for the connector to receive."""
        self.incoming.put(item)

    def close(self) -> None:
        self.closed.set()


class FakeSocketFactory:
    """Socket factory recording every connection attempt."""

    def __init__(
        self,
        socket: Optional[FakeSocket] = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
    ) -> None:
        self.socket = socket or FakeSocket()
        self.error = error
        self.delay = delay
        self.calls: List[Tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeSocket:
        self.calls.append((url, kwargs))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.socket


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> ConnectionSettings:
    """Settings with fast ticks for tests."""
    return ConnectionSettings(
        max_rest_connections=5,
        request_timeout=5.0,
        tick_interval=0.005,
        socket_poll_interval=0.005,
        open_timeout=1.0,
        _env_file=None,
    )


@pytest.fixture
def fake_socket() -> FakeSocket:
    return FakeSocket()


@pytest.fixture
def socket_factory(fake_socket: FakeSocket) -> FakeSocketFactory:
    return FakeSocketFactory(fake_socket)


@pytest.fixture
def speech_credentials() -> Credentials:
    return Credentials(
        service_id="SpeechToTextV1",
        url="https://stream.example.com/speech-to-text/api",
        user="user",
        password="secret",
    )


@pytest.fixture
def credential_provider(speech_credentials: Credentials) -> StaticCredentialProvider:
    return StaticCredentialProvider([
        speech_credentials,
        Credentials(
            service_id="LanguageTranslatorV2",
            url="https://gateway.example.com/language-translator/api",
            token="token_abc123",
        ),
    ])


@pytest.fixture
def wait_for() -> Callable:
    """Poll a predicate from async tests until it holds or time runs out."""

    async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("Condition not met within timeout")
            await asyncio.sleep(0.005)

    return _wait_for


@pytest.fixture
def make_socket_factory(fake_socket: FakeSocket) -> Callable[..., FakeSocketFactory]:
    """Build socket factories that fail or stall around the shared fake socket."""

    def _make(error: Optional[BaseException] = None, delay: float = 0.0) -> FakeSocketFactory:
        return FakeSocketFactory(fake_socket, error=error, delay=delay)

    return _make
