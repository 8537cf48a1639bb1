"""Browser ``XMLHttpRequest`` emulation on top of an asynchronous transport.

The emulator reproduces the client-side state machine of the browser API:
ready-state transitions, event ordering, request header and method policy,
redirect following and the rejection of synchronous requests. The network
work itself is delegated to a :class:`~xhrshim.transport.Transport`, which by
default is :class:`~xhrshim.transport.HttpxTransport`.

Typical use from a coroutine::

    xhr = XMLHttpRequest()
    xhr.onload = lambda event: print(event.target.response_text)
    xhr.open("GET", "https://example.com/")
    xhr.send()
"""

from __future__ import annotations

import base64
import codecs
import logging
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial
from typing import Any

from .config import XHROptions
from .const import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_HEADERS,
    DEFAULT_PORTS,
    HIDDEN_RESPONSE_HEADERS,
    NETWORK_ERROR_STATUS,
    REDIRECT_STATUSES,
    SEE_OTHER,
    ReadyState,
)
from .errors import (
    InvalidStateError,
    NotSupportedError,
    SecurityError,
    TooManyRedirectsError,
)
from .events import EventTable, Listener, XHREvent
from .policy import is_allowed_http_header, is_allowed_http_method
from .transport import (
    ClientRequest,
    HttpxTransport,
    Transport,
    TransportOptions,
    TransportResponse,
)
from .url import ParsedURL, parse, resolve

_LOGGER = logging.getLogger(__name__)

_BODYLESS_METHODS = frozenset({"GET", "HEAD"})
_BODY_HEADERS = ("Content-Length", "Content-Type")

Body = str | bytes | bytearray | memoryview


@dataclass(frozen=True, slots=True)
class RequestSettings:
    """Arguments captured by ``open()``."""

    method: str
    url: str
    async_: bool = True
    user: str | None = None
    password: str | None = None


def _resolve_target(url: ParsedURL) -> tuple[str, str, int]:
    """Return the scheme, hostname and effective port for ``url``."""

    scheme = url.scheme
    if scheme == "file":
        raise NotSupportedError("Local file requests are not supported")
    if scheme in DEFAULT_PORTS:
        hostname = url.hostname
    elif not scheme:
        scheme = "http"
        hostname = url.hostname or "localhost"
    else:
        raise NotSupportedError(f"Protocol not supported: {scheme}")
    return scheme, hostname, url.port or DEFAULT_PORTS[scheme]


def _host_header(scheme: str, hostname: str, port: int) -> str:
    """Build the ``Host`` value, omitting the scheme's default port."""

    host = f"[{hostname}]" if ":" in hostname else hostname
    if port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"
    return host


def _basic_credentials(user: str, password: str | None) -> str:
    token = base64.b64encode(f"{user}:{password or ''}".encode()).decode("ascii")
    return f"Basic {token}"


def _handler_property(event: XHREvent) -> property:
    """Expose the ``on<event>`` slot of ``event`` as an attribute."""

    def _get(self: XMLHttpRequest) -> Listener | None:
        return self._events.get_handler(event)

    def _set(self: XMLHttpRequest, handler: Listener | None) -> None:
        self._events.set_handler(event, handler)

    return property(_get, _set, doc=f"Single-slot handler for {event.value}.")


class XMLHttpRequest:
    """One reusable HTTP exchange with browser ``XMLHttpRequest`` semantics.

    Supported ``options`` keys: ``agent`` (a shared ``httpx.AsyncClient``),
    ``transport``, the TLS overrides ``pfx``, ``key``, ``passphrase``,
    ``cert``, ``ca``, ``ciphers`` and ``reject_unauthorized``, plus
    ``max_redirects`` and ``user_agent``.
    """

    UNSENT = ReadyState.UNSENT
    OPENED = ReadyState.OPENED
    HEADERS_RECEIVED = ReadyState.HEADERS_RECEIVED
    LOADING = ReadyState.LOADING
    DONE = ReadyState.DONE

    onreadystatechange = _handler_property(XHREvent.READYSTATECHANGE)
    onloadstart = _handler_property(XHREvent.LOADSTART)
    onload = _handler_property(XHREvent.LOAD)
    onloadend = _handler_property(XHREvent.LOADEND)
    onerror = _handler_property(XHREvent.ERROR)

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        """Validate ``options`` and prepare an UNSENT exchange."""

        self._options = XHROptions.from_mapping(options)
        self._transport: Transport = self._options.transport or HttpxTransport(
            agent=self._options.agent
        )
        self._default_headers = {
            **DEFAULT_HEADERS,
            "User-Agent": self._options.user_agent,
        }
        self._headers: dict[str, str] = dict(self._default_headers)
        self._settings: RequestSettings | None = None
        self._disable_header_check = False
        self._send_flag = False
        self._error_flag = False
        self._events = EventTable()

        # In-flight exchange; replaced on every redirect hop.
        self._request: ClientRequest | None = None
        self._response: TransportResponse | None = None
        self._generation = 0
        self._current_url = ""
        self._method = ""
        self._body: bytes | None = None
        self._redirect_count = 0
        self._decoder: codecs.IncrementalDecoder | None = None

        self.ready_state = ReadyState.UNSENT
        self.response_text = ""
        self.response_xml = ""
        self.status: int | None = None
        self.status_text: str | None = None

    @property
    def settings(self) -> RequestSettings | None:
        """Return the arguments of the last ``open()`` call."""

        return self._settings

    @property
    def send_flag(self) -> bool:
        """Return True while a send is in progress."""

        return self._send_flag

    @property
    def error_flag(self) -> bool:
        """Return True when the current exchange ended abnormally."""

        return self._error_flag

    @property
    def _is_async(self) -> bool:
        return self._settings is not None and self._settings.async_

    # ------------------------------------------------------------------
    # Request configuration
    # ------------------------------------------------------------------

    def open(
        self,
        method: str,
        url: str,
        async_: bool = True,
        user: str | None = None,
        password: str | None = None,
    ) -> None:
        """Start a new exchange, cancelling any exchange still in flight.

        Raises ``SecurityError`` for TRACE, TRACK and CONNECT. A synchronous
        exchange (``async_=False``) is accepted here and rejected by ``send()``.
        """

        self.abort()
        self._error_flag = False

        if not is_allowed_http_method(method):
            raise SecurityError("Request method not allowed")

        self._settings = RequestSettings(
            method=method,
            url=str(url),
            async_=async_ if isinstance(async_, bool) else True,
            user=user or None,
            password=password or None,
        )
        self.status = None
        self.status_text = None
        self._set_state(ReadyState.OPENED)

    def set_disable_header_check(self, state: bool) -> None:
        """Enable or disable the forbidden request header check."""

        self._disable_header_check = bool(state)

    def set_request_header(self, name: str, value: Any) -> bool:
        """Set a request header and return whether it was accepted.

        Forbidden or empty names are refused with a logged warning instead of an
        exception.
        """

        if self.ready_state != ReadyState.OPENED:
            raise InvalidStateError(
                "setRequestHeader can only be called when state is OPENED"
            )
        if (
            not isinstance(name, str)
            or not name
            or not is_allowed_http_header(
                name, check_disabled=self._disable_header_check
            )
        ):
            _LOGGER.warning('Refused to set unsafe header "%s"', name)
            return False
        if self._send_flag:
            raise InvalidStateError("send flag is true")
        self._store_header(name, str(value))
        return True

    def get_request_header(self, name: str) -> str:
        """Return the request header ``name`` or an empty string."""

        if not isinstance(name, str):
            return ""
        key = self._find_header(name)
        return self._headers[key] if key is not None else ""

    def _find_header(self, name: str) -> str | None:
        lowered = name.lower()
        for key in self._headers:
            if key.lower() == lowered:
                return key
        return None

    def _store_header(self, name: str, value: str) -> None:
        """Set ``name``, reusing an existing entry that differs only in case."""

        key = self._find_header(name)
        self._headers[key if key is not None else name] = value

    def _drop_header(self, name: str) -> None:
        key = self._find_header(name)
        if key is not None:
            del self._headers[key]

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, body: Body | None = None) -> None:
        """Issue the request opened by ``open()``.

        Raises ``InvalidStateError`` when not OPENED or already sending, and
        ``NotSupportedError`` for synchronous exchanges and for ``file:`` or
        unknown schemes. Network failures are reported through the state
        machine instead of being raised.
        """

        if self.ready_state != ReadyState.OPENED or self._settings is None:
            raise InvalidStateError(
                "connection must be opened before send() is called"
            )
        if self._send_flag:
            raise InvalidStateError("send has already been called")

        settings = self._settings
        if not settings.async_:
            raise NotSupportedError("Synchronous requests are not supported")

        url = parse(settings.url)
        scheme, hostname, port = _resolve_target(url)
        self._store_header("Host", _host_header(scheme, hostname, port))

        if settings.user:
            self._store_header(
                "Authorization", _basic_credentials(settings.user, settings.password)
            )

        payload: bytes | None = None
        if settings.method.upper() in _BODYLESS_METHODS:
            payload = None
        elif body:
            if isinstance(body, (bytes, bytearray, memoryview)):
                payload = bytes(body)
            else:
                payload = str(body).encode("utf-8")
            self._store_header("Content-Length", str(len(payload)))
            if self._find_header("Content-Type") is None:
                self._store_header("Content-Type", DEFAULT_CONTENT_TYPE)
        elif settings.method.upper() == "POST":
            # Some servers reject a bodiless POST without an explicit length.
            self._store_header("Content-Length", "0")

        self._error_flag = False
        self._send_flag = True
        self._current_url = settings.url
        self._method = settings.method
        self._body = payload
        self._redirect_count = 0

        generation = self._generation
        # Fired here for historical compatibility with browsers.
        self.dispatch_event(XHREvent.READYSTATECHANGE)
        if generation != self._generation:
            return

        if self._issue(self._build_options(url, scheme, hostname, port)):
            self.dispatch_event(XHREvent.LOADSTART)

    def _build_options(
        self, url: ParsedURL, scheme: str, hostname: str, port: int
    ) -> TransportOptions:
        return TransportOptions(
            scheme=scheme,
            hostname=hostname,
            port=port,
            path=url.path,
            pathname=url.pathname,
            search=url.search,
            fragment=url.fragment,
            method=self._method,
            headers=dict(self._headers),
            agent=self._options.agent,
            tls=self._options.tls if scheme == "https" else None,
        )

    def _issue(self, options: TransportOptions) -> bool:
        """Hand ``options`` to the transport and start the exchange.

        Returns False when the transport failed synchronously; the failure
        has then already been routed through the error handler.
        """

        generation = self._generation
        _LOGGER.debug("Issuing %s %s", options.method, options.url)
        request: ClientRequest | None = None
        try:
            request = self._transport.request(
                options, partial(self._handle_response, generation)
            )
            request.on("error", partial(self._handle_transport_error, generation))
            self._request = request
            if self._body:
                request.write(self._body)
            request.end()
        except Exception as err:
            _LOGGER.debug(
                "Transport refused %s %s: %s", options.method, options.url, err
            )
            if request is not None:
                request.abort()
            self._handle_error(err)
            return False
        return True

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _handle_response(self, generation: int, response: TransportResponse) -> None:
        if generation != self._generation or not self._send_flag:
            return

        if response.status_code in REDIRECT_STATUSES and response.headers.get(
            "location"
        ):
            self._follow_redirect(response)
            return

        self._response = response
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.status = response.status_code
        self.status_text = response.reason_phrase
        response.on("data", partial(self._handle_data, generation))
        response.on("end", partial(self._handle_end, generation))
        response.on("error", partial(self._handle_transport_error, generation))
        self._set_state(ReadyState.HEADERS_RECEIVED)

    def _follow_redirect(self, response: TransportResponse) -> None:
        """Re-issue the request against the response's ``Location``."""

        limit = self._options.max_redirects
        if limit is not None and self._redirect_count >= limit:
            self._handle_error(TooManyRedirectsError(limit, url=self._current_url))
            return
        self._redirect_count += 1

        location = resolve(self._current_url, response.headers["location"])
        target = parse(location)
        try:
            scheme, hostname, port = _resolve_target(target)
        except NotSupportedError as err:
            self._handle_error(err)
            return

        if response.status_code == SEE_OTHER:
            self._method = "GET"
            self._body = None
            for name in _BODY_HEADERS:
                self._drop_header(name)

        _LOGGER.debug(
            "Following %s redirect from %s to %s",
            response.status_code,
            self._current_url,
            location,
        )
        self._current_url = location
        self._store_header("Host", _host_header(scheme, hostname, port))
        self._issue(self._build_options(target, scheme, hostname, port))

    def _handle_data(self, generation: int, chunk: str | bytes) -> None:
        if generation != self._generation or not self._send_flag:
            return
        if chunk:
            if isinstance(chunk, str):
                self.response_text += chunk
            elif self._decoder is not None:
                self.response_text += self._decoder.decode(bytes(chunk))
        self._set_state(ReadyState.LOADING)

    def _handle_end(self, generation: int) -> None:
        if generation != self._generation or not self._send_flag:
            return
        if self._decoder is not None:
            self.response_text += self._decoder.decode(b"", final=True)
        # Cleared first so a DONE listener may immediately reuse the object.
        self._send_flag = False
        self._request = None
        self._set_state(ReadyState.DONE)

    def _handle_transport_error(self, generation: int, error: BaseException) -> None:
        if generation != self._generation or not self._send_flag:
            return
        self._handle_error(error)

    def _handle_error(self, error: BaseException) -> None:
        """Finish the exchange as a network failure."""

        _LOGGER.debug("Request to %s failed: %s", self._current_url, error)
        self._request = None
        self.status = NETWORK_ERROR_STATUS
        self.status_text = str(error) or type(error).__name__
        self.response_text = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
        self._error_flag = True
        self._send_flag = False

        generation = self._generation
        self._set_state(ReadyState.DONE)
        if generation == self._generation:
            self.dispatch_event(XHREvent.ERROR)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def abort(self) -> None:
        """Cancel the exchange and rearm the object in the UNSENT state.

        A mid-exchange abort passes through DONE, with the error flag set, so
        listeners observe the terminal transition before the reset.
        """

        self._generation += 1
        generation = self._generation
        if self._request is not None:
            self._request.abort()
            self._request = None
        self._response = None
        self._decoder = None
        self._headers = dict(self._default_headers)
        self.response_text = ""
        self.response_xml = ""
        self._error_flag = True

        if self.ready_state not in (ReadyState.UNSENT, ReadyState.DONE) and (
            self.ready_state != ReadyState.OPENED or self._send_flag
        ):
            self._send_flag = False
            self._set_state(ReadyState.DONE)
            if generation != self._generation:
                # A DONE listener already started a new exchange.
                return
        self._send_flag = False
        self.ready_state = ReadyState.UNSENT

    # ------------------------------------------------------------------
    # Response accessors
    # ------------------------------------------------------------------

    def get_response_header(self, name: str) -> str | None:
        """Return the response header ``name`` or ``None``."""

        if (
            isinstance(name, str)
            and self.ready_state > ReadyState.OPENED
            and self._response is not None
            and not self._error_flag
        ):
            return self._response.headers.get(name.lower())
        return None

    def get_all_response_headers(self) -> str:
        """Return all response headers as CRLF-separated lines."""

        if (
            self.ready_state < ReadyState.HEADERS_RECEIVED
            or self._error_flag
            or self._response is None
        ):
            return ""
        return "\r\n".join(
            f"{name}: {value}"
            for name, value in self._response.headers.items()
            if name not in HIDDEN_RESPONSE_HEADERS
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event_listener(self, event: XHREvent | str, callback: Listener) -> None:
        """Register ``callback`` for ``event``; duplicates are allowed."""

        self._events.add(event, callback)

    def remove_event_listener(self, event: XHREvent | str, callback: Listener) -> None:
        """Remove every registration of ``callback`` for ``event``."""

        self._events.remove(event, callback)

    def dispatch_event(self, event: XHREvent | str) -> None:
        """Run the ``on<event>`` handler and then the registered listeners."""

        self._events.dispatch(event, self)

    def _set_state(self, state: ReadyState) -> None:
        """Move to ``state`` and emit the events tied to the transition."""

        if self.ready_state == state:
            return
        self.ready_state = ReadyState(state)
        _LOGGER.debug("Ready state is now %s", self.ready_state.name)

        # Synchronous exchanges only report the initial and terminal states.
        if (
            self._is_async
            or self.ready_state < ReadyState.OPENED
            or self.ready_state == ReadyState.DONE
        ):
            self.dispatch_event(XHREvent.READYSTATECHANGE)

        if self.ready_state == ReadyState.DONE and not self._error_flag:
            self.dispatch_event(XHREvent.LOAD)
            self.dispatch_event(XHREvent.LOADEND)

    # ------------------------------------------------------------------
    # Browser-style aliases
    # ------------------------------------------------------------------

    setRequestHeader = set_request_header
    getRequestHeader = get_request_header
    getResponseHeader = get_response_header
    getAllResponseHeaders = get_all_response_headers
    setDisableHeaderCheck = set_disable_header_check
    addEventListener = add_event_listener
    removeEventListener = remove_event_listener
    dispatchEvent = dispatch_event

    @property
    def readyState(self) -> ReadyState:
        """Alias of ``ready_state``."""

        return self.ready_state

    @property
    def responseText(self) -> str:
        """Alias of ``response_text``."""

        return self.response_text

    @property
    def responseXML(self) -> str:
        """Alias of ``response_xml``; always empty."""

        return self.response_xml

    @property
    def statusText(self) -> str | None:
        """Alias of ``status_text``."""

        return self.status_text
