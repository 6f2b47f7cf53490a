"""
Watson Connection Core
======================

Connection layer for the Watson service wrappers.

This package provides:
- REST connectors with per-endpoint bounded connection pools
- WebSocket stream connectors with threaded send/receive queues
- Keep-alive and typed control messages for recognition streams
- Credential providers and connection settings
"""

__version__ = "1.0.0"

from watson_core.config import (
    ConnectionSettings,
    CredentialProvider,
    Credentials,
    StaticCredentialProvider,
    ConfigFileCredentialProvider,
    get_settings,
)
from watson_core.connection import (
    BinaryMessage,
    ConnectionState,
    ConnectorRegistry,
    Form,
    KeepAlive,
    NoOpMessage,
    Request,
    RequestConnector,
    Response,
    StartMessage,
    StopMessage,
    StreamConnector,
    TextMessage,
)
from watson_core.exceptions import (
    ConfigurationError,
    ConnectionLayerError,
    RequestConstructionError,
    StreamStateError,
)

__all__ = [
    "__version__",
    "ConnectionSettings",
    "get_settings",
    "Credentials",
    "CredentialProvider",
    "StaticCredentialProvider",
    "ConfigFileCredentialProvider",
    "ConnectorRegistry",
    "Form",
    "Request",
    "Response",
    "RequestConnector",
    "ConnectionState",
    "TextMessage",
    "BinaryMessage",
    "StreamConnector",
    "StartMessage",
    "StopMessage",
    "NoOpMessage",
    "KeepAlive",
    "ConnectionLayerError",
    "ConfigurationError",
    "RequestConstructionError",
    "StreamStateError",
]
