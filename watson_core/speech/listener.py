"""
Continuous speech recognition over a stream connector.

``SpeechListener`` is the reference consumer of the streaming connection
layer: it opens a recognize session, keeps it alive while the user is
silent, holds audio back until the service reports that it is listening and
forwards recognition results to the caller.
"""

from __future__ import annotations

import asyncio
import json
import struct
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set
from urllib.parse import quote

import structlog

from watson_core.connection.control import StartMessage, StopMessage
from watson_core.connection.keepalive import KeepAlive
from watson_core.connection.registry import ConnectorRegistry
from watson_core.connection.websocket import (
    BinaryMessage,
    ConnectionState,
    Message,
    StreamConnector,
    TextMessage,
)
from watson_core.exceptions import StreamStateError

logger = structlog.get_logger(__name__)

SERVICE_ID = "SpeechToTextV1"
RECOGNIZE_FUNCTION = "/v1/recognize"
DEFAULT_MODEL = "en-US_BroadbandModel"

# Audio clips held back while waiting for the "listening" state
MAX_QUEUED_RECORDINGS = 30

# Peak level (0.0 to 1.0) below which a clip counts as silence
DEFAULT_SILENCE_THRESHOLD = 0.03

ResultCallback = Callable[[Dict[str, Any]], Optional[Awaitable[None]]]
ErrorCallback = Callable[[str], Optional[Awaitable[None]]]


def peak_level(data: bytes) -> float:
    """Peak absolute level of little-endian 16-bit PCM, scaled to 0.0-1.0."""
    count = len(data) // 2
    if count == 0:
        return 0.0
    samples = struct.unpack(f"<{count}h", data[:count * 2])
    return max(abs(sample) for sample in samples) / 32768.0


class SpeechListener:
    """
    Streams microphone audio to the recognize endpoint.

    Args:
        registry: Registry used to create the stream connector
        model: Recognition model name
        recording_hz: Sample rate of the 16-bit PCM audio passed to add_audio()
        max_alternatives: Alternatives requested per result
        word_confidence: Request per-word confidence values
        timestamps: Request per-word timestamps
        keep_alive_interval: Idle seconds before a no-op is sent
        detect_silence: Skip silent clips and end the utterance once the
            audio goes quiet after speech was sent
        silence_threshold: Peak level below which a clip is silent
    """

    def __init__(
        self,
        registry: ConnectorRegistry,
        *,
        model: str = DEFAULT_MODEL,
        recording_hz: int = 22050,
        max_alternatives: int = 1,
        word_confidence: bool = False,
        timestamps: bool = False,
        keep_alive_interval: Optional[float] = None,
        detect_silence: bool = False,
        silence_threshold: float = DEFAULT_SILENCE_THRESHOLD,
    ) -> None:
        self.registry = registry
        self.model = model
        self.recording_hz = recording_hz
        self.max_alternatives = max_alternatives
        self.word_confidence = word_confidence
        self.timestamps = timestamps
        self.keep_alive_interval = keep_alive_interval
        self.detect_silence = detect_silence
        self.silence_threshold = silence_threshold

        self.on_error: Optional[ErrorCallback] = None

        self._connector: Optional[StreamConnector] = None
        self._keep_alive: Optional[KeepAlive] = None
        self._callback: Optional[ResultCallback] = None
        self._listen_active = False
        self._audio_sent = False
        self._pending_audio: Deque[bytes] = deque()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_listening(self) -> bool:
        return self._connector is not None

    @property
    def listen_active(self) -> bool:
        """True once the service has reported that it is listening."""
        return self._listen_active

    @property
    def connector(self) -> Optional[StreamConnector]:
        return self._connector

    @property
    def queued_audio(self) -> int:
        return len(self._pending_audio)

    def start_listening(self, on_result: ResultCallback) -> bool:
        """
        Open a recognize session.

        Args:
            on_result: Called with every decoded ``results`` payload

        Returns:
            False if already listening or the service is not configured
        """
        if on_result is None:
            raise ValueError("on_result callback is required")
        if self.is_listening:
            return False

        connector = self.registry.create_connector(
            SERVICE_ID,
            RECOGNIZE_FUNCTION,
            "?model=" + quote(self.model),
        )
        if connector is None:
            return False

        connector.on_message = self._on_message
        connector.on_close = self._on_closed

        self._connector = connector
        self._callback = on_result
        self._keep_alive = KeepAlive(
            connector,
            interval=self.keep_alive_interval,
            settings=self.registry.settings,
        ).start()

        self._send_start()
        return True

    def stop_listening(self) -> bool:
        """Close the recognize session."""
        if self._connector is None:
            logger.error("Not currently listening")
            return False

        self._connector.close()
        self._connector = None

        if self._keep_alive is not None:
            self._keep_alive.stop()
            self._keep_alive = None

        self._callback = None
        self._listen_active = False
        self._audio_sent = False
        self._pending_audio.clear()
        return True

    def add_audio(self, data: bytes, level: Optional[float] = None) -> bool:
        """
        Send one clip of 16-bit PCM audio.

        Clips are held back until the service is listening. With
        ``detect_silence`` on, silent clips are skipped and the first silent
        clip after sent audio sends a stop message.

        Args:
            data: Little-endian 16-bit PCM samples
            level: Peak level of the clip, computed from ``data`` if omitted

        Returns:
            False if the clip was dropped because too many are queued
        """
        if self._connector is None:
            raise StreamStateError("add_audio() called while not listening")

        if self.detect_silence:
            if level is None:
                level = peak_level(data)
            if level < self.silence_threshold:
                if self._audio_sent:
                    logger.debug("Silence detected, ending utterance", level=level)
                    self._send_stop()
                return True

        if self._listen_active:
            self._connector.send(BinaryMessage(data))
            self._audio_sent = True
            return True

        if len(self._pending_audio) >= MAX_QUEUED_RECORDINGS:
            logger.error(
                "Too many audio clips queued before listening state",
                queued=len(self._pending_audio),
            )
            self._report_error("Audio queue is full.")
            return False

        self._pending_audio.append(data)
        return True

    def stop_audio(self) -> None:
        """Mark the end of an utterance so the service returns final results."""
        if self._connector is None:
            raise StreamStateError("stop_audio() called while not listening")

        if self._listen_active:
            self._send_stop()

    def _send_stop(self) -> None:
        self._connector.send(StopMessage().to_message())
        self._listen_active = False
        self._audio_sent = False

    def _send_start(self) -> None:
        start = StartMessage.for_l16(
            self.recording_hz,
            max_alternatives=self.max_alternatives,
            word_confidence=self.word_confidence,
            timestamps=self.timestamps,
        )
        self._connector.send(start.to_message())

    async def _on_message(self, message: Message) -> None:
        if not isinstance(message, TextMessage):
            return

        try:
            payload = json.loads(message.text)
        except ValueError:
            logger.error("Failed to parse JSON from server", text=message.text[:200])
            return
        if not isinstance(payload, dict):
            logger.error("Unexpected message from server", text=message.text[:200])
            return

        if "results" in payload:
            callback = self._callback
            if callback is not None:
                result = callback(payload)
                if asyncio.iscoroutine(result):
                    await result
        elif "state" in payload:
            logger.info("Server state changed", state=payload["state"])
            if payload["state"] == "listening":
                if self._listen_active:
                    logger.warning("Already in listen active state")
                self._listen_active = True
                self._flush_pending_audio()
        elif "error" in payload:
            logger.error("Recognize stream error", error=payload["error"])
        else:
            logger.warning("Unknown message", text=message.text[:200])

    def _flush_pending_audio(self) -> None:
        while self._pending_audio and self._connector is not None:
            self._connector.send(BinaryMessage(self._pending_audio.popleft()))
            self._audio_sent = True

    async def _on_closed(self, connector: StreamConnector) -> None:
        if connector.state is not ConnectionState.DISCONNECTED:
            return

        logger.error("Disconnected from server", url=connector.url)
        self._listen_active = False
        if connector is self._connector:
            self.stop_listening()

        if self.on_error is not None:
            result = self.on_error("Disconnected from server.")
            if asyncio.iscoroutine(result):
                await result

    def _report_error(self, error: str) -> None:
        if self.on_error is None:
            return
        result = self.on_error(error)
        if asyncio.iscoroutine(result):
            task = asyncio.get_running_loop().create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Error in speech error handler", error=str(task.exception()))
