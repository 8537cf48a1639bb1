"""Transport contract and the httpx-backed implementation.

The emulator talks to the network only through :class:`Transport`. A transport
accepts :class:`TransportOptions`, returns a :class:`ClientRequest` handle and
later hands a :class:`TransportResponse` to the supplied callback. Responses
stream their body through ``data`` notifications followed by exactly one
``end`` or ``error``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .config import TLSSettings, build_ssl_context
from .const import DEFAULT_PORTS

_LOGGER = logging.getLogger(__name__)


class _Emitter:
    """Minimal named-callback registry shared by requests and responses."""

    def __init__(self) -> None:
        self._callbacks: defaultdict[str, list[Callable[..., Any]]] = defaultdict(
            list
        )

    def on(self, event: str, callback: Callable[..., Any]) -> _Emitter:
        """Subscribe ``callback`` to ``event`` and return ``self`` for chaining."""

        self._callbacks[event].append(callback)
        return self

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every callback subscribed to ``event``."""

        for callback in list(self._callbacks.get(event, ())):
            callback(*args)


@dataclass(slots=True)
class TransportOptions:
    """Everything a transport needs to issue one request."""

    scheme: str
    hostname: str
    port: int
    path: str
    method: str
    headers: dict[str, str]
    pathname: str = "/"
    search: str = ""
    fragment: str = ""
    agent: httpx.AsyncClient | None = None
    tls: TLSSettings | None = None

    @property
    def url(self) -> str:
        """Return the absolute URL for the request."""

        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        if self.port != DEFAULT_PORTS.get(self.scheme):
            host = f"{host}:{self.port}"
        return f"{self.scheme}://{host}{self.path}"


class TransportResponse(_Emitter):
    """Response head plus a body stream of ``data``/``end``/``error`` events."""

    def __init__(
        self,
        status_code: int,
        headers: dict[str, str] | None = None,
        reason_phrase: str = "",
    ) -> None:
        """Store the status line and lower-case the header names."""

        super().__init__()
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        self.headers = {key.lower(): value for key, value in (headers or {}).items()}


class ClientRequest(Protocol):
    """Handle for a request issued through a transport."""

    def write(self, body: bytes) -> None:
        """Queue ``body`` to be sent with the request."""

    def end(self) -> None:
        """Finish the request and start the exchange."""

    def abort(self) -> None:
        """Cancel the exchange; no further callbacks are delivered."""

    def on(self, event: str, callback: Callable[..., Any]) -> Any:
        """Subscribe to ``error`` notifications."""


ResponseCallback = Callable[[TransportResponse], None]


class Transport(Protocol):
    """Asynchronous request primitive supplied by the host platform."""

    def request(
        self, options: TransportOptions, on_response: ResponseCallback
    ) -> ClientRequest:
        """Create a request; nothing is sent before ``end()``."""


def _flatten_headers(headers: httpx.Headers) -> dict[str, str]:
    """Collapse repeated response headers into comma-separated values."""

    return {key: ", ".join(headers.get_list(key)) for key in headers.keys()}


@dataclass(slots=True)
class _PendingBody:
    chunks: list[bytes] = field(default_factory=list)

    def append(self, body: bytes | str) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.chunks.append(bytes(body))

    def content(self) -> bytes | None:
        return b"".join(self.chunks) if self.chunks else None


class HttpxClientRequest(_Emitter):
    """A request executed as an asyncio task on an ``httpx.AsyncClient``."""

    def __init__(
        self,
        options: TransportOptions,
        on_response: ResponseCallback,
        *,
        agent: httpx.AsyncClient | None = None,
    ) -> None:
        """Bind the request description and response callback."""

        super().__init__()
        self._options = options
        self._on_response = on_response
        self._agent = agent
        self._body = _PendingBody()
        self._task: asyncio.Task[None] | None = None
        self._aborted = False

    def write(self, body: bytes | str) -> None:
        """Buffer ``body`` until ``end()``."""

        self._body.append(body)

    def end(self) -> None:
        """Schedule the exchange on the event loop."""

        if self._task is not None or self._aborted:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        self._task.add_done_callback(self._log_unexpected_failure)

    def abort(self) -> None:
        """Cancel the running exchange."""

        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _verify(self) -> Any:
        tls = self._options.tls
        if tls is None or tls.is_default:
            return True
        return build_ssl_context(tls)

    async def _run(self) -> None:
        options = self._options
        client = self._agent
        owns_client = client is None
        try:
            _LOGGER.debug("Sending %s %s", options.method, options.url)
            try:
                if client is None:
                    client = httpx.AsyncClient(
                        verify=self._verify(), follow_redirects=False
                    )
                request = client.build_request(
                    options.method,
                    options.url,
                    headers=options.headers,
                    content=self._body.content(),
                )
                response = await client.send(
                    request, stream=True, follow_redirects=False
                )
            except (httpx.HTTPError, httpx.InvalidURL, OSError, ValueError) as err:
                _LOGGER.debug("Request to %s failed: %s", options.url, err)
                self.emit("error", err)
                return
            try:
                await self._stream(response)
            finally:
                await response.aclose()
        finally:
            if owns_client and client is not None:
                await client.aclose()

    async def _stream(self, response: httpx.Response) -> None:
        wrapped = TransportResponse(
            response.status_code,
            _flatten_headers(response.headers),
            reason_phrase=response.reason_phrase,
        )
        self._on_response(wrapped)
        try:
            async for chunk in response.aiter_text():
                if chunk:
                    wrapped.emit("data", chunk)
        except (httpx.HTTPError, OSError) as err:
            _LOGGER.debug("Response stream from %s failed: %s", self._options.url, err)
            wrapped.emit("error", err)
            return
        wrapped.emit("end")

    def _log_unexpected_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            _LOGGER.error(
                "Unhandled failure in request to %s",
                self._options.url,
                exc_info=(type(error), error, error.__traceback__),
            )


class HttpxTransport:
    """Default transport running requests on ``httpx.AsyncClient``.

    When ``agent`` is supplied every request shares that client and its
    connection pool; the transport never closes it. Otherwise each request
    opens and closes its own client, configured from the request's TLS
    settings.
    """

    def __init__(self, *, agent: httpx.AsyncClient | None = None) -> None:
        """Store the shared client."""

        self._agent = agent

    def request(
        self, options: TransportOptions, on_response: ResponseCallback
    ) -> HttpxClientRequest:
        """Create a request; the exchange starts at ``end()``."""

        return HttpxClientRequest(
            options,
            on_response,
            agent=options.agent or self._agent,
        )
