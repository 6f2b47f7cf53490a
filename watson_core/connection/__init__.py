"""
Connection Layer
================

REST and WebSocket connectors shared by the Watson service wrappers.

Author: Platform Engineering Team
Version: 1.0.0
"""

from watson_core.connection.control import (
    ControlMessage,
    NoOpMessage,
    StartMessage,
    StopMessage,
)
from watson_core.connection.keepalive import KeepAlive
from watson_core.connection.registry import ConnectorRegistry
from watson_core.connection.rest import (
    Form,
    Request,
    RequestConnector,
    Response,
)
from watson_core.connection.websocket import (
    BinaryMessage,
    ConnectionState,
    Message,
    StreamConnector,
    TextMessage,
    fixup_url,
)

__all__ = [
    # REST
    "Form",
    "Request",
    "Response",
    "RequestConnector",
    # Streaming
    "ConnectionState",
    "Message",
    "TextMessage",
    "BinaryMessage",
    "StreamConnector",
    "fixup_url",
    # Control
    "ControlMessage",
    "StartMessage",
    "StopMessage",
    "NoOpMessage",
    "KeepAlive",
    # Registry
    "ConnectorRegistry",
]
