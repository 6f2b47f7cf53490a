"""
Core Utilities
==============

Logging setup shared by the connection layer.
"""

from watson_core.core.logging import LogFormat, LogLevel, get_logger, setup_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "get_logger",
    "setup_logging",
]
