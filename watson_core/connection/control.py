"""
Control messages for speech recognition streams.

Typed replacements for hand-built JSON dictionaries. Each message serializes
to the exact wire format the recognize WebSocket expects.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from watson_core.connection.websocket import TextMessage


class ControlMessage:
    """Base class for JSON control messages."""

    action: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_message(self) -> TextMessage:
        """Wrap as a text frame ready for ``StreamConnector.send``."""
        return TextMessage(self.to_json())


@dataclass
class StartMessage(ControlMessage):
    """Opens a recognition request on the stream."""

    content_type: str = "audio/l16;rate=22050;channels=1;"
    continuous: bool = True
    max_alternatives: int = 1
    interim_results: bool = True
    word_confidence: bool = False
    timestamps: bool = False

    action = "start"

    @classmethod
    def for_l16(cls, rate: int, channels: int = 1, **kwargs: Any) -> "StartMessage":
        """Start message for raw 16-bit PCM audio at the given sample rate."""
        return cls(content_type=f"audio/l16;rate={rate};channels={channels};", **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "content-type": self.content_type,
            "continuous": self.continuous,
            "max_alternatives": self.max_alternatives,
            "interim_results": self.interim_results,
            "word_confidence": self.word_confidence,
            "timestamps": self.timestamps,
        }


@dataclass
class StopMessage(ControlMessage):
    """Ends the current recognition request."""

    action = "stop"


@dataclass
class NoOpMessage(ControlMessage):
    """Keeps an idle stream from timing out."""

    action = "no-op"
