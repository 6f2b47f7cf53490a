"""
Connector registry.

Resolves service IDs to endpoints through a credential provider and hands
out connectors. One registry is created at application start and passed to
every service wrapper; REST connectors are cached per (service ID, function)
for the registry's lifetime.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import httpx
import structlog

from watson_core.config.credentials import (
    ConfigFileCredentialProvider,
    CredentialProvider,
    StaticCredentialProvider,
)
from watson_core.config.settings import ConnectionSettings, get_settings
from watson_core.connection.rest import RequestConnector
from watson_core.connection.websocket import SocketFactory, StreamConnector, fixup_url

logger = structlog.get_logger(__name__)


class ConnectorRegistry:
    """
    Factory and cache for connectors.

    Args:
        credentials: Credential provider used to resolve service IDs
        settings: Connection settings
        transport: Optional httpx transport for REST connectors
        socket_factory: Optional socket factory for stream connectors

    Example:
        >>> registry = ConnectorRegistry(provider)
        >>> connector = registry.get_connector("SpeechToTextV1", "/v1/models")
        >>> if connector is not None:
        ...     connector.send(request)
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        settings: Optional[ConnectionSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        socket_factory: Optional[SocketFactory] = None,
    ) -> None:
        self.credentials = credentials
        self.settings = settings or get_settings()
        self._transport = transport
        self._socket_factory = socket_factory
        self._connectors: Dict[Tuple[str, str], RequestConnector] = {}

    @classmethod
    def from_settings(cls, settings: Optional[ConnectionSettings] = None, **kwargs) -> "ConnectorRegistry":
        """Build a registry from the credentials file named in the settings."""
        settings = settings or get_settings()
        if settings.credentials_file:
            provider: CredentialProvider = ConfigFileCredentialProvider.from_file(
                settings.credentials_file
            )
        else:
            logger.warning("No credentials file configured")
            provider = StaticCredentialProvider()
        return cls(provider, settings=settings, **kwargs)

    def get_connector(
        self,
        service_id: str,
        function: str = "",
        verify: Optional[bool] = None,
    ) -> Optional[RequestConnector]:
        """
        Get the REST connector for a service endpoint.

        Args:
            service_id: Service ID to resolve
            function: Path suffix appended to the service URL
            verify: TLS certificate verification for a newly created
                connector; the settings decide when None

        Returns:
            The cached or newly created connector, or None if the service has
            no credentials configured
        """
        key = (service_id, function)
        connector = self._connectors.get(key)
        if connector is not None and not connector.is_closed:
            return connector

        credentials = self.credentials.find_credentials(service_id)
        if credentials is None:
            logger.error("Failed to find credentials for service", service_id=service_id)
            return None

        connector = RequestConnector(
            credentials.url + function,
            credentials,
            verify=verify,
            transport=self._transport,
            settings=self.settings,
        )
        self._connectors[key] = connector
        logger.debug("Created REST connector", service_id=service_id, url=connector.url)
        return connector

    def create_connector(
        self,
        service_id: str,
        function: str = "",
        args: str = "",
    ) -> Optional[StreamConnector]:
        """
        Create a stream connector for a service endpoint.

        Stream connectors are not cached; each call starts a new session.

        Args:
            service_id: Service ID to resolve
            function: Path suffix appended to the service URL
            args: Query string appended after the function

        Returns:
            A new connector, or None if the service has no credentials
        """
        credentials = self.credentials.find_credentials(service_id)
        if credentials is None:
            logger.error("Failed to find credentials for service", service_id=service_id)
            return None

        connector = StreamConnector(
            fixup_url(credentials.url) + function + args,
            credentials=credentials,
            connect=self._socket_factory,
            settings=self.settings,
        )
        logger.debug("Created stream connector", service_id=service_id, url=connector.url)
        return connector

    async def aclose(self) -> None:
        """Close every cached REST connector."""
        connectors = list(self._connectors.values())
        self._connectors.clear()
        for connector in connectors:
            await connector.aclose()

    def __len__(self) -> int:
        return len(self._connectors)
