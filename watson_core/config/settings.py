"""Configuration for the Watson connection layer.

Values can be provided through environment variables prefixed with
``WATSON_`` or through a ``.env`` file. Connectors accept explicit overrides
and fall back to these settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConnectionSettings(BaseSettings):
    """Process-wide defaults for REST and streaming connectors."""

    model_config = SettingsConfigDict(
        env_prefix="WATSON_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # REST connection pool
    max_rest_connections: int = Field(
        default=5,
        description="Maximum number of in-flight requests per connector",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Seconds before an HTTP call is reported as failed",
    )
    max_request_bytes: Optional[int] = Field(
        default=4 * 1024 * 1024,
        description="Largest request upload accepted by send(); None disables the cap",
    )
    disable_ssl_verification: bool = Field(
        default=False,
        description="Skip TLS certificate checks (self-signed test endpoints)",
    )

    # Streaming
    keep_alive_interval: float = 20.0
    tick_interval: float = 0.01
    socket_poll_interval: float = 0.05
    open_timeout: float = 10.0

    # Credentials
    credentials_file: Optional[str] = Field(
        default=None,
        description="Path to a JSON file listing service credentials",
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "pretty"

    @field_validator("max_rest_connections")
    @classmethod
    def validate_max_rest_connections(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_rest_connections must be at least 1")
        return v

    @field_validator("request_timeout", "keep_alive_interval", "open_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("tick_interval", "socket_poll_interval")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("value must not be negative")
        return v


@lru_cache()
def get_settings() -> ConnectionSettings:
    """Get cached settings instance."""
    return ConnectionSettings()
