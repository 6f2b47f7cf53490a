"""
REST Connector
==============

Non-blocking HTTP request pipeline shared by every service wrapper.

Each connector is bound to one resolved endpoint (base URL plus credentials)
and owns a pooled ``httpx.AsyncClient``. Requests are accepted immediately,
dispatched in submission order while fewer than ``max_connections`` are in
flight, and completed by invoking the request's ``on_response`` callback
exactly once on the event loop.

Author: Platform Engineering Team
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
import json
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set, Tuple

import httpx
import structlog

from watson_core import __version__
from watson_core.config.credentials import Credentials
from watson_core.config.settings import ConnectionSettings, get_settings
from watson_core.exceptions import RequestConstructionError

logger = structlog.get_logger(__name__)

USER_AGENT = f"watson-core-python/{__version__}"

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"})

ResponseCallback = Callable[["Request", "Response"], Optional[Awaitable[None]]]


@dataclass
class Form:
    """
    A single form field.

    A form either carries a plain string ``value`` or file ``contents``.
    Any file form on a request switches the body to multipart encoding.
    """

    value: Optional[str] = None
    contents: Optional[bytes] = None
    filename: str = "file"
    mime_type: str = "application/octet-stream"

    @property
    def is_file(self) -> bool:
        return self.contents is not None

    @classmethod
    def file(
        cls,
        contents: bytes,
        filename: str = "file",
        mime_type: str = "application/octet-stream",
    ) -> "Form":
        """Create a file form field."""
        return cls(contents=contents, filename=filename, mime_type=mime_type)


@dataclass
class Request:
    """
    An outbound HTTP request.

    Attributes:
        method: HTTP method
        function: Path suffix appended to the connector URL
        headers: Extra request headers
        parameters: Query parameters
        forms: Form fields (mutually exclusive with ``body``)
        body: Raw request body (mutually exclusive with ``forms``)
        content_type: Content type of ``body``
        timeout: Per-request timeout override in seconds
        on_response: Callback invoked with ``(request, response)``
    """

    method: str = "GET"
    function: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    forms: Optional[Dict[str, Form]] = None
    body: Optional[bytes] = None
    content_type: Optional[str] = None
    timeout: Optional[float] = None
    on_response: Optional[ResponseCallback] = None

    @property
    def is_multipart(self) -> bool:
        return bool(self.forms) and any(form.is_file for form in self.forms.values())


@dataclass(frozen=True)
class Response:
    """
    The result of one request.

    ``status_code`` is 0 when no HTTP response was received at all
    (connection failure, timeout). ``error`` is only set when ``success``
    is False.
    """

    success: bool
    status_code: int = 0
    data: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed: float = 0.0
    error: Optional[str] = None

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.data)

    @classmethod
    def failure(
        cls,
        error: str,
        status_code: int = 0,
        data: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        elapsed: float = 0.0,
    ) -> "Response":
        return cls(
            success=False,
            status_code=status_code,
            data=data,
            headers=headers or {},
            elapsed=elapsed,
            error=error,
        )


def _without_content_type(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() != "content-type"}


def _payload_size(request: Request) -> int:
    """Bytes of raw body or form data a request will upload."""
    if request.body is not None:
        return len(request.body)

    size = 0
    for form in (request.forms or {}).values():
        if form.is_file:
            size += len(form.contents)
        elif form.value is not None:
            size += len(form.value.encode("utf-8"))
    return size


class RequestConnector:
    """
    Connector bound to one REST endpoint.

    Args:
        url: Endpoint URL; each request's ``function`` is appended to it
        credentials: Credentials used for the Authorization header
        headers: Headers sent with every request
        max_connections: Maximum number of requests in flight
        timeout: Default request timeout in seconds
        max_body_bytes: Largest upload (raw body or form data) accepted by ``send``
        verify: Verify TLS certificates; False allows self-signed endpoints
        transport: Optional httpx transport (used for testing)
        settings: Settings used for any value not given explicitly

    Example:
        >>> connector = RequestConnector("https://gateway.example.com/api/v1/models")
        >>> connector.send(Request(on_response=handle_models))
        True
    """

    def __init__(
        self,
        url: str,
        credentials: Optional[Credentials] = None,
        *,
        headers: Optional[Dict[str, str]] = None,
        max_connections: Optional[int] = None,
        timeout: Optional[float] = None,
        max_body_bytes: Optional[int] = None,
        verify: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[ConnectionSettings] = None,
    ) -> None:
        settings = settings or get_settings()

        self.url = url
        self.credentials = credentials
        self.headers = dict(headers or {})
        self.max_connections = max_connections or settings.max_rest_connections
        self.timeout = timeout or settings.request_timeout
        self.max_body_bytes = (
            max_body_bytes if max_body_bytes is not None else settings.max_request_bytes
        )
        self.verify = verify if verify is not None else not settings.disable_ssl_verification

        if self.max_connections < 1:
            raise ValueError("max_connections must be at least 1")

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._pending: Deque[Request] = deque()
        self._in_flight = 0
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Number of requests currently holding a connection slot."""
        return self._in_flight

    @property
    def pending(self) -> int:
        """Number of accepted requests waiting for a free slot."""
        return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": USER_AGENT}
            if self.credentials is not None:
                headers.update(self.credentials.auth_headers())
            headers.update(self.headers)

            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=self.max_connections),
                transport=self._transport,
                verify=self.verify,
                follow_redirects=True,
            )
        return self._client

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def send(self, request: Request) -> bool:
        """
        Queue a request for asynchronous execution.

        Must be called from the thread running the event loop. The call never
        waits for the network.

        Args:
            request: Request to send

        Returns:
            True if the request was accepted, False if it was rejected
            (connector closed, body over the size cap)

        Raises:
            RequestConstructionError: If the request is malformed
        """
        self._validate(request)

        if self._closed:
            logger.warning("Send on closed connector", url=self.url, function=request.function)
            return False

        if self.max_body_bytes is not None:
            size = _payload_size(request)
            if size > self.max_body_bytes:
                logger.error(
                    "Request body too large",
                    url=self.url,
                    function=request.function,
                    size=size,
                    limit=self.max_body_bytes,
                )
                return False

        loop = asyncio.get_running_loop()
        self._pending.append(request)
        logger.debug(
            "Request queued",
            method=request.method,
            url=self.url + request.function,
            pending=len(self._pending),
            in_flight=self._in_flight,
        )
        self._dispatch_pending(loop)
        return True

    def _validate(self, request: Request) -> None:
        if not isinstance(request, Request):
            raise RequestConstructionError(
                f"Expected a Request, got {type(request).__name__}",
                field="request",
            )
        if request.method.upper() not in SUPPORTED_METHODS:
            raise RequestConstructionError(
                f"Unsupported HTTP method: {request.method}",
                field="method",
            )
        if request.body is not None and request.forms:
            raise RequestConstructionError(
                "A request can carry either a raw body or form fields, not both",
                field="body",
            )
        if request.body is not None and not isinstance(request.body, (bytes, bytearray)):
            raise RequestConstructionError("Request body must be bytes", field="body")
        for name, form in (request.forms or {}).items():
            if not isinstance(form, Form):
                raise RequestConstructionError(
                    f"Form field '{name}' must be a Form",
                    field="forms",
                )

    def _dispatch_pending(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start queued requests while connection slots are free."""
        while self._pending and self._in_flight < self.max_connections:
            request = self._pending.popleft()
            self._in_flight += 1
            task = loop.create_task(self._process(request))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _process(self, request: Request) -> None:
        try:
            response = await self._execute(request)
        except Exception as e:
            logger.exception("Unexpected error executing request", function=request.function)
            response = Response.failure(f"Unexpected error: {e}")
        finally:
            self._in_flight -= 1
            if not self._closed:
                self._dispatch_pending(asyncio.get_running_loop())

        await self._deliver(request, response)

    async def _execute(self, request: Request) -> Response:
        client = self._get_client()
        url = self.url + request.function
        kwargs = self._build_request_kwargs(request)

        start_time = time.monotonic()
        try:
            http_response = await client.request(request.method.upper(), url, **kwargs)
        except httpx.TimeoutException as e:
            elapsed = time.monotonic() - start_time
            logger.warning("Request timed out", url=url, elapsed=elapsed)
            return Response.failure(f"Request timed out: {e}", elapsed=elapsed)
        except httpx.RequestError as e:
            elapsed = time.monotonic() - start_time
            logger.warning("Request failed", url=url, error=str(e))
            return Response.failure(f"Request failed: {e}", elapsed=elapsed)

        elapsed = time.monotonic() - start_time
        headers = dict(http_response.headers)

        if http_response.is_success:
            logger.debug(
                "Request completed",
                url=url,
                status_code=http_response.status_code,
                elapsed=elapsed,
            )
            return Response(
                success=True,
                status_code=http_response.status_code,
                data=http_response.content,
                headers=headers,
                elapsed=elapsed,
            )

        logger.warning(
            "Request returned error status",
            url=url,
            status_code=http_response.status_code,
        )
        return Response.failure(
            f"HTTP {http_response.status_code}: {http_response.reason_phrase}",
            status_code=http_response.status_code,
            data=http_response.content,
            headers=headers,
            elapsed=elapsed,
        )

    def _build_request_kwargs(self, request: Request) -> Dict[str, Any]:
        headers = dict(request.headers)
        if request.content_type and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = request.content_type

        kwargs: Dict[str, Any] = {"params": request.parameters or None}
        if request.timeout is not None:
            kwargs["timeout"] = httpx.Timeout(request.timeout)

        if request.forms:
            data = {name: form.value or "" for name, form in request.forms.items() if not form.is_file}
            if request.is_multipart:
                files: Dict[str, Tuple[str, bytes, str]] = {
                    name: (form.filename, form.contents, form.mime_type)
                    for name, form in request.forms.items()
                    if form.is_file
                }
                # httpx generates the multipart boundary header
                headers = _without_content_type(headers)
                kwargs["files"] = files
            kwargs["data"] = data
        elif request.body is not None:
            kwargs["content"] = bytes(request.body)

        kwargs["headers"] = headers
        return kwargs

    async def _deliver(self, request: Request, response: Response) -> None:
        """Invoke the request callback, sync or async."""
        if request.on_response is None:
            return
        try:
            result = request.on_response(request, response)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(
                "Error in response callback",
                function=request.function,
                error=str(e),
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def aclose(self) -> None:
        """
        Close the connector.

        Queued requests that never started are completed with a failed
        response, in-flight requests are allowed to finish, then the HTTP
        client is closed.
        """
        if self._closed:
            return
        self._closed = True

        abandoned = list(self._pending)
        self._pending.clear()
        for request in abandoned:
            await self._deliver(request, Response.failure("Connector closed"))

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.debug("Connector closed", url=self.url, abandoned=len(abandoned))

    async def __aenter__(self) -> "RequestConnector":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"RequestConnector(url='{self.url}', max_connections={self.max_connections}, "
            f"in_flight={self._in_flight}, pending={len(self._pending)})"
        )
