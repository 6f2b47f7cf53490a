"""
Configuration
=============

Connection settings and credential providers.
"""

from watson_core.config.credentials import (
    ConfigFileCredentialProvider,
    CredentialProvider,
    Credentials,
    StaticCredentialProvider,
)
from watson_core.config.settings import ConnectionSettings, get_settings

__all__ = [
    "ConnectionSettings",
    "get_settings",
    "Credentials",
    "CredentialProvider",
    "StaticCredentialProvider",
    "ConfigFileCredentialProvider",
]
