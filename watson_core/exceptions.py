"""
Custom exceptions for the Watson connection layer.

Only caller bugs and configuration problems are raised. Transport and
protocol failures are reported through callbacks (a failed ``Response`` or a
stream ``on_close``) and never cross the asynchronous boundary.
"""

from typing import Any, Dict, Optional


class ConnectionLayerError(Exception):
    """
    Base exception for all connection layer errors.

    Attributes:
        message: Human-readable error description
        code: Optional short error code
        details: Optional additional error details
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ConfigurationError(ConnectionLayerError):
    """
    Raised when connection configuration cannot be loaded.

    Covers unreadable or malformed credential files. A service that simply
    has no credentials configured is not an error at this level: connector
    lookups return ``None`` instead.
    """

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if path:
            details["path"] = path
        super().__init__(message, code="config_error", details=details, **kwargs)
        self.path = path


class RequestConstructionError(ConnectionLayerError, ValueError):
    """
    Raised by ``RequestConnector.send`` when a request is malformed.

    This is a programming error (for example both a raw body and form fields
    on one request), so it is raised synchronously instead of being turned
    into a failed response.
    """

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if field:
            details["field"] = field
        super().__init__(message, code="invalid_request", details=details, **kwargs)
        self.field = field


class StreamStateError(ConnectionLayerError):
    """Raised when a streaming operation is used outside an active session."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="stream_state", **kwargs)


__all__ = [
    "ConnectionLayerError",
    "ConfigurationError",
    "RequestConstructionError",
    "StreamStateError",
]
