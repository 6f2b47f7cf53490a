"""
Service credentials and credential providers.

A credential provider maps a service ID to the base URL and authentication
data for that service. The connection layer only reads credentials; it never
stores or refreshes them.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union, runtime_checkable

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from watson_core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


class Credentials(BaseModel):
    """Base URL plus basic-auth user/password or a bearer token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service_id: str = Field(
        default="",
        validation_alias=AliasChoices("service_id", "m_ServiceID"),
    )
    url: str = Field(validation_alias=AliasChoices("url", "m_URL"))
    user: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("user", "m_User"),
    )
    password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("password", "m_Password"),
    )
    token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("token", "api_key", "m_Token"),
    )

    @property
    def has_basic_auth(self) -> bool:
        return self.user is not None and self.password is not None

    def auth_headers(self) -> Dict[str, str]:
        """Build the Authorization header for this credential, if any."""
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        if self.has_basic_auth:
            raw = f"{self.user}:{self.password}".encode("utf-8")
            return {"Authorization": "Basic " + base64.b64encode(raw).decode("ascii")}
        return {}

    def __repr__(self) -> str:
        # Keep secrets out of logs
        return f"Credentials(service_id={self.service_id!r}, url={self.url!r})"


@runtime_checkable
class CredentialProvider(Protocol):
    """Anything that can look up credentials by service ID."""

    def find_credentials(self, service_id: str) -> Optional[Credentials]:
        ...


class StaticCredentialProvider:
    """In-memory credential provider."""

    def __init__(
        self,
        credentials: Union[Iterable[Credentials], Dict[str, Credentials], None] = None,
    ) -> None:
        self._credentials: Dict[str, Credentials] = {}
        if isinstance(credentials, dict):
            for service_id, cred in credentials.items():
                self.add(cred, service_id=service_id)
        elif credentials is not None:
            for cred in credentials:
                self.add(cred)

    def add(self, credentials: Credentials, service_id: Optional[str] = None) -> None:
        key = service_id or credentials.service_id
        if not key:
            raise ConfigurationError("Credentials need a service ID")
        self._credentials[key] = credentials

    def find_credentials(self, service_id: str) -> Optional[Credentials]:
        return self._credentials.get(service_id)

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._credentials

    def __len__(self) -> int:
        return len(self._credentials)


class _CredentialsFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    credentials: List[Credentials] = Field(
        default_factory=list,
        validation_alias=AliasChoices("credentials", "m_Credentials"),
    )


class ConfigFileCredentialProvider(StaticCredentialProvider):
    """
    Credential provider backed by a JSON configuration file.

    Expected layout::

        {"credentials": [{"service_id": "SpeechToTextV1",
                          "url": "https://stream.watsonplatform.net/speech-to-text/api",
                          "user": "...", "password": "..."}]}

    The ``m_Credentials``/``m_ServiceID``/``m_URL``/``m_User``/``m_Password``
    keys of older configuration files are accepted as well.
    """

    def __init__(self, credentials: Iterable[Credentials], path: Optional[str] = None) -> None:
        super().__init__(credentials)
        self.path = path

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ConfigFileCredentialProvider":
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Unable to read credentials file: {e}", path=str(path))
        return cls.from_json(raw, path=str(path))

    @classmethod
    def from_json(cls, raw: str, path: Optional[str] = None) -> "ConfigFileCredentialProvider":
        try:
            parsed = _CredentialsFile.model_validate(json.loads(raw))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Credentials file is not valid JSON: {e}", path=path)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid credentials entry: {e}", path=path)

        provider = cls(parsed.credentials, path=path)
        logger.debug("Loaded credentials", path=path, services=len(provider))
        return provider
